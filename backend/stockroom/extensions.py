# Overview: shared db/migrate handles; bound to the app in create_app, imported by models and services.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()
