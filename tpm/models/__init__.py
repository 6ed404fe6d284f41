"""
Transfer Pricing Workflow Platform
SQLAlchemy database instance shared by every model module.

Usage:
    from tpm.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
