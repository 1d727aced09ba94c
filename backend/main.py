from fastapi import Depends, FastAPI
import uvicorn
from fastapi.middleware.cors import CORSMiddleware
from core.config import settings
from core.errors import register_exception_handlers
from core.logging import configure_logging
from db.database import create_db_and_tables
from core.auth import auth_backend, fastapi_users, staff_registration_allowed
from routers.auth import router as auth_router
from routers.categories import router as categories_router
from routers.inventory import router as inventory_router
from routers.orders import router as orders_router
from routers.products import router as products_router
from schemas.users import UserCreate, UserRead, UserUpdate
from contextlib import asynccontextmanager


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await create_db_and_tables()
    yield


app = FastAPI(
    title="Netyark Mall API",
    description="Admin API for the Netyark Mall store: products, orders and the stock ledger",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


# Authentication routes (fastapi-users)
app.include_router(fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"])
app.include_router(
    fastapi_users.get_register_router(UserRead, UserCreate),
    prefix="/auth",
    tags=["auth"],
    dependencies=[Depends(staff_registration_allowed)],
)
app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_users_router(UserRead, UserUpdate), prefix="/users", tags=["users"])

# Store routes
app.include_router(categories_router, prefix="/categories", tags=["categories"])
app.include_router(products_router, prefix="/products", tags=["products"])
app.include_router(orders_router, prefix="/orders", tags=["orders"])
app.include_router(inventory_router, prefix="/inventory", tags=["inventory"])


@app.get("/health", tags=["health"])
async def health():
    return {"status": "OK", "message": "Netyark Mall API is running"}


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
