"""
Declarative base shared by all billing models
"""
from sqlalchemy.orm import declarative_base

Base = declarative_base()
