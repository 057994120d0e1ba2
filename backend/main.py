from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from persona_registry import get_registry
from routes import personas_router, routing_router


# Load the registry at import: a malformed registry must stop the process
# before it serves anything.
registry = get_registry()


app = FastAPI(
    title="Persona Router API",
    description="Trigger-based persona/mode routing and response template assembly",
    version="1.0.0",
)


# CORS settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(personas_router)
app.include_router(routing_router)


@app.middleware("http")
async def utf8_charset_middleware(request: Request, call_next):
    response = await call_next(request)
    ct = response.headers.get("content-type", "")
    if "application/json" in ct and "charset" not in ct:
        response.headers["content-type"] = ct + "; charset=utf-8"
    return response


@app.get("/")
async def root():
    return {
        "message": "Persona Router API",
        "version": "1.0.0",
        "registry_version": registry.version,
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "personas": len(registry.personas), "modes": len(registry.modes)}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
