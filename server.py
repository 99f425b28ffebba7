import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from classes.backend import Backend
from classes.errors import AuthError

logger = logging.getLogger("diffref_backend")


class Event(BaseModel):
    type: str
    session_token: Optional[str] = None
    payload: Optional[dict] = None


class SignInRequest(BaseModel):
    # Google Sign-In ID token
    credential: Optional[str] = None


def create_app(backend: Optional[Backend] = None) -> FastAPI:
    app = FastAPI(title="Differentiation & Reflection")

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allow all origins for dev
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.backend = backend

    def get_backend() -> Backend:
        if app.state.backend is None:
            app.state.backend = Backend()
        return app.state.backend

    def bearer_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
        if not authorization:
            return None
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return None
        return token.strip()

    @app.post("/auth/sign-in")
    def sign_in(body: SignInRequest, backend: Backend = Depends(get_backend)):
        try:
            token, user = backend.auth.sign_in(body.credential)
        except AuthError as e:
            raise HTTPException(status_code=401, detail=str(e))
        return {"session_token": token, "user": {"id": user.id, "display_name": user.display_name}}

    @app.post("/auth/sign-out")
    def sign_out(token: Optional[str] = Depends(bearer_token), backend: Backend = Depends(get_backend)):
        if token:
            backend.auth.sign_out(token)
        return {"status": "success"}

    @app.get("/auth/me")
    def me(token: Optional[str] = Depends(bearer_token), backend: Backend = Depends(get_backend)):
        try:
            user = backend.auth.current_user(token)
        except AuthError as e:
            raise HTTPException(status_code=401, detail=str(e))
        return {"id": user.id, "display_name": user.display_name}

    @app.post("/events")
    def send_event(
        event: Event,
        token: Optional[str] = Depends(bearer_token),
        backend: Backend = Depends(get_backend),
    ):
        request_data = event.model_dump()
        if not request_data.get("session_token"):
            request_data["session_token"] = token
        return backend.process_request(request_data)

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
