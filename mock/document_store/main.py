from fastapi import FastAPI, HTTPException
from pathlib import Path
import json
import os

app = FastAPI(title="Mock Document Store", version="1.0.0")
DATA_DIR = Path(os.environ.get("DOCUMENT_STORE_DATA", "/data/document_store"))

# One fixture per user: {"user": {...}, "transactions": [...], "bankAccounts": [...]}


def _load_user(user_id: str) -> dict:
    file = DATA_DIR / f"{user_id}.json"
    if not file.exists():
        raise HTTPException(status_code=404, detail="user not found")
    return json.loads(file.read_text())


@app.get("/health")
def health(): return {"status": "ok"}


@app.get("/users/{user_id}")
def get_user(user_id: str):
    return _load_user(user_id).get("user", {})


@app.get("/users/{user_id}/transactions")
def get_transactions(user_id: str):
    transactions = _load_user(user_id).get("transactions", [])
    # Served most recent first, like the real gateway
    transactions.sort(key=lambda t: t.get("date") or "", reverse=True)
    return {"transactions": transactions}


@app.get("/users/{user_id}/bankAccounts")
def get_accounts(user_id: str):
    return {"accounts": _load_user(user_id).get("bankAccounts", [])}
