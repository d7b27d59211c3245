# gnarhub/db/base_class.py

from sqlalchemy.orm import declarative_base

# Single declarative base for every table the SQL store creates.
Base = declarative_base()
