"""Main FastAPI application entry point."""
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bizdash.database import engine, Base
from bizdash.api.routes import router
# Import models to register them with SQLAlchemy Base
from bizdash.models.audit import AuditEntry
from bizdash.models.trail import DecisionTrail
from bizdash.models.entities import Company, Contact, Deal, Invoice, Expense, Doc, GalleryItem

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="bizdash - audit log and decision trails",
    description="Append-only audit entries and one-level rollback of dashboard record mutations.",
    version="0.1.0"
)

# Enable CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # For MVP - restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api", tags=["Audit"])


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "bizdash"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
