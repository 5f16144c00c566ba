import os
from workconnect import create_app, socketio
from workconnect.extensions import db

app = create_app(os.getenv('FLASK_ENV', 'development'))

@app.shell_context_processor
def make_shell_context():
    from workconnect.models import Payment, MpesaTransaction, Job, JobApplication, AuditLog, WebhookEvent
    return {
        'db': db,
        'Payment': Payment,
        'MpesaTransaction': MpesaTransaction,
        'Job': Job,
        'JobApplication': JobApplication,
        'AuditLog': AuditLog,
        'WebhookEvent': WebhookEvent
    }

if __name__ == '__main__':
    socketio.run(app, debug=True, host='0.0.0.0', port=5000)
