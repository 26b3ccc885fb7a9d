# routes.py
from fastapi import FastAPI
from controller.admin_controller import admin_router
from controller.chat_controller import chat_router
from controller.knowledge_controller import knowledge_router


def register_routes(app: FastAPI) -> None:
    """Register & Access control controllers here."""
    app.include_router(chat_router)
    app.include_router(knowledge_router)
    app.include_router(admin_router)
