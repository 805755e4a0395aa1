"""Flask extension instances.

Kept in their own module so models and services can import them without
importing the application factory.
"""
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()
