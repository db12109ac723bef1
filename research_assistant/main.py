# Run from project root: uvicorn research_assistant.main:app --reload

import logging

from fastapi import FastAPI

from research_assistant.api.routes import router

logging.basicConfig(level=logging.INFO)


app = FastAPI(title="Research Paper Assistant")
app.include_router(router)
