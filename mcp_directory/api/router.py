from fastapi import APIRouter

from mcp_directory.api.routes import admin, auth, blog, health, seo, submissions, uploads
from mcp_directory.api.routes.listings import clients_router, servers_router

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(seo.router, tags=["seo"])
api_router.include_router(auth.router, tags=["auth"])
api_router.include_router(servers_router, prefix="/servers", tags=["public"])
api_router.include_router(clients_router, prefix="/clients", tags=["public"])
api_router.include_router(blog.router, prefix="/blog", tags=["blog"])
api_router.include_router(submissions.router, prefix="/submissions", tags=["submissions"])
api_router.include_router(uploads.router, prefix="/uploads", tags=["submissions"])
api_router.include_router(admin.router, prefix="/admin", tags=["moderation"])
