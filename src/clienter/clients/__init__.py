"""Client records -- CRUD, search and the status kanban board.

Provides the SQLAlchemy model, Pydantic schemas, the pure board/move
planning functions in kanban.py, and ClientRepository for async CRUD.
"""
