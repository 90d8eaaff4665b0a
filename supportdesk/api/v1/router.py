from fastapi import APIRouter

from supportdesk.api.v1.articles import router as articles_router
from supportdesk.api.v1.employees import router as employees_router
from supportdesk.api.v1.tickets import router as tickets_router

api_router = APIRouter()
api_router.include_router(tickets_router)
api_router.include_router(employees_router)
api_router.include_router(articles_router)
