# Service layer: plain functions over a SQLAlchemy session
