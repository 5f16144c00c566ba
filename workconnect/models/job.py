import uuid
from datetime import datetime

from sqlalchemy import Uuid

from workconnect.extensions import db


class Job(db.Model):
    __tablename__ = 'jobs'

    id = db.Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = db.Column(db.String(255), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)

    # open | in_progress | completed | cancelled
    status = db.Column(db.String(20), nullable=False, default='open')
    # unpaid | paid
    payment_status = db.Column(db.String(20), nullable=False, default='unpaid')

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    applications = db.relationship('JobApplication', backref='job', lazy='dynamic')

    def __repr__(self):
        return f'<Job {self.id} - {self.status}>'


class JobApplication(db.Model):
    __tablename__ = 'job_applications'
    __table_args__ = (
        db.UniqueConstraint('job_id', 'worker_id', name='uq_job_applications_job_worker'),
    )

    id = db.Column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id = db.Column(Uuid, db.ForeignKey('jobs.id'), nullable=False, index=True)
    worker_id = db.Column(db.String(255), nullable=False, index=True)

    # pending | accepted | rejected
    status = db.Column(db.String(20), nullable=False, default='pending')

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)

    def __repr__(self):
        return '<JobApplication %r>' % self.id
