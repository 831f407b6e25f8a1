class SignalingError(Exception):
    """Base class for failures surfaced to callers of the signaling core."""

    status_code = 500
    detail = "Signaling error"

    def __init__(self, detail: str = None):
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class NotFound(SignalingError):
    status_code = 404
    detail = "Room not found"


class RoomFull(SignalingError):
    status_code = 409
    detail = "Room full"


class InvalidArgument(SignalingError):
    status_code = 400
    detail = "Invalid"


class ResourceExhausted(SignalingError):
    status_code = 503
    detail = "Could not create room"


ERRORS_BY_STATUS = {
    NotFound.status_code: NotFound,
    RoomFull.status_code: RoomFull,
    InvalidArgument.status_code: InvalidArgument,
    ResourceExhausted.status_code: ResourceExhausted,
}
