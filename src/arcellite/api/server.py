from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from arcellite.api.routers import files, system
from arcellite.config.settings import config
from arcellite.version import get_version

app = FastAPI(
    title="Arcellite Storage API",
    description="Removable storage integration and file serving for your personal cloud.",
    version=get_version(),
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)

app.include_router(system.router)
app.include_router(files.router)
