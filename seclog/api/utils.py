from __future__ import annotations


def ok(**data: object) -> dict[str, object]:
    return {"status": "ok", **data}


def err(code: str, message: str) -> dict[str, object]:
    return {
        "status": "error",
        "error": {
            "code": code,
            "message": message,
        },
    }
