# Overview: Flask extension instances shared by the ledger models, services and CLI.

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Batch mode so ALTERs also work against the default SQLite database
migrate = Migrate(render_as_batch=True)
