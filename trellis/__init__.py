"""Trellis -- a scaffolding generator that keeps generated projects updatable.

Trellis renders Jinja2 templates into a FastAPI/SQLAlchemy project, records a
fingerprint for every file it writes, and on later runs reconciles those
files against both user edits and newer templates.

Quick usage::

    trellis new blog
    cd blog
    trellis generate entity Post title:string[searchable] author_id:uuid->User
    trellis update
"""

__version__ = "0.1.0"
