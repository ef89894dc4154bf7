from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import config
from src.routes.credits import router as credits_router
from src.utils.cron import lifespan

app = FastAPI(title="GhostSpeak credits", lifespan=lifespan)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["https://ghostspeak.io", "https://www.ghostspeak.io"]
    + (["http://localhost:5173", "http://localhost:3000"] if config.IS_DEVELOPMENT else []),
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


app.include_router(credits_router)
