from fastapi import Request

from adventure.services.session_controller import SessionController


def get_controller(request: Request) -> SessionController:
    """
    Dependency to get the process-wide session controller.
    """
    return request.app.state.controller
