"""docrules - declarative validation rules for structured documents."""

__version__ = "0.1.0"
