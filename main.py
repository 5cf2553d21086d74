# main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crm_billing.repository.database_async import create_tables
from crm_billing.routers.admcloud_router import router as admcloud_router
from crm_billing.routers.billing_router import router as billing_router
from crm_billing.routers.cron_router import router as cron_router
from crm_billing.routers.proforma_router import router as proforma_router
from crm_billing.routers.workspace_router import router as workspace_router

app = FastAPI(title="CRM Billing")
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

app.include_router(cron_router)
app.include_router(proforma_router)
app.include_router(billing_router)
app.include_router(workspace_router)
app.include_router(admcloud_router)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Adjust in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup():
    await create_tables()


@app.get("/health")
async def health():
    return {"status": "ok"}
