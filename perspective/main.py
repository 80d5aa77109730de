from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from perspective import config
from perspective.backend.client import close_backend
from perspective.routes import auth, blogs, pages
from perspective.security import SecurityHeadersMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.configure_logging()
    yield
    await close_backend()


app = FastAPI(
    title="Perspective",
    description="Write, publish and read blog posts",
    lifespan=lifespan,
)

app.state.limiter = auth.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(SecurityHeadersMiddleware)

# Include routes
app.include_router(pages.router)
app.include_router(auth.router)
app.include_router(blogs.router)
