from fastapi import APIRouter
from .endpoints import (
    users,
    rewards,
    spin,
)

api_router = APIRouter()

api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(
    rewards.router,
    prefix="/rewards",
    tags=["Rewards"],
)
api_router.include_router(
    spin.router,
    prefix="/spin",
    tags=["Lucky Spin"],
)
