import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ordering_portal.config import settings
from ordering_portal.logging_config import configure_logging
from ordering_portal.routers import auth, distributors, order_items, orders, products, stores
from ordering_portal.security.sessions import install_auth_session_middleware

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title='Supermarket Ordering Portal')

install_auth_session_middleware(app)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(auth.router)
app.include_router(stores.router)
app.include_router(distributors.router)
app.include_router(products.router)
app.include_router(orders.router)
app.include_router(order_items.router)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Database error on %s %s', request.method, request.url.path, exc_info=exc)
    return JSONResponse({'detail': 'Internal server error'}, status_code=500)


@app.get('/api/health')
def health() -> dict:
    return {'status': 'ok'}
