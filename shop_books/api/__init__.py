"""
Shop Books API Application Factory
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from .customers import router as customers_router
from .credit import router as credit_router
from .purchases import router as purchases_router
from .inventory import router as inventory_router
from .sales import router as sales_router
from .finance import router as finance_router
from .reports import router as reports_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Shop Books API",
        description="Bookkeeping for a retail shop: stock, sales, Udhaar and cash accounts",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(customers_router, prefix="/customers", tags=["Customers"])
    app.include_router(credit_router, prefix="/credit", tags=["Credit"])
    app.include_router(purchases_router, prefix="/purchases", tags=["Purchases"])
    app.include_router(inventory_router, prefix="/inventory", tags=["Inventory"])
    app.include_router(sales_router, prefix="/sales", tags=["Sales"])
    app.include_router(finance_router, prefix="/finance", tags=["Finance"])
    app.include_router(reports_router, prefix="/reports", tags=["Reports"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "shop_books_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Shop Books API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "customers": "/customers",
                "credit": "/credit",
                "purchases": "/purchases",
                "inventory": "/inventory",
                "sales": "/sales",
                "finance": "/finance",
                "reports": "/reports",
            }
        }

    return app


app = create_app()
