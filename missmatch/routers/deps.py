from fastapi import Depends, HTTPException, Request, status

from missmatch.core.container import Container


def get_container(request: Request) -> Container:
    return request.app.state.container


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def upload_rate_limit(request: Request, container: Container = Depends(get_container)) -> None:
    if not container.upload_limiter.hit(client_ip(request)):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many requests. Please try again later.")


def generation_rate_limit(request: Request, container: Container = Depends(get_container)) -> None:
    if not container.generation_limiter.hit(client_ip(request)):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many requests. Please try again later.")
