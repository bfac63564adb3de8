"""Error taxonomy for Plastic Watch.

Every failure the contribution and review workflows can produce is one of the
classes below. Views convert them to JSON through a single error handler, so
each carries a machine readable ``code`` and the HTTP status to answer with.
"""


class PlasticWatchError(Exception):
    code = "error"
    http_status = 500
    default_message = "An unexpected error occurred. Please try again."

    def __init__(self, message=None, **details):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


# --- Geolocation ---
class GeolocationError(PlasticWatchError):
    http_status = 400


class PermissionDenied(GeolocationError):
    code = "permission_denied"
    default_message = "Unable to retrieve your location. Please enable location services."


class PositionUnavailable(GeolocationError):
    code = "position_unavailable"
    default_message = "Unable to get an accurate location. Please try again in a more open area."


class GeoTimeout(GeolocationError):
    code = "geo_timeout"
    default_message = "Timed out waiting for your location."


# --- Capture ---
class InvalidImage(PlasticWatchError):
    code = "invalid_image"
    http_status = 400
    default_message = "Please upload a valid image file."


# --- Suggestions ---
class SuggestionError(PlasticWatchError):
    http_status = 502


class MissingProductImage(SuggestionError):
    code = "missing_product_image"
    http_status = 400
    default_message = "Product image is required to get AI suggestions."


class SuggestionsDisabled(SuggestionError):
    code = "ai_disabled"
    http_status = 200
    default_message = "AI image analysis is currently disabled in the admin settings."


class SuggestionTimeout(SuggestionError):
    code = "ai_timeout"
    http_status = 504
    default_message = (
        "The AI is taking too long to respond. Please fill in the details "
        "manually or try again later."
    )


class SuggestionServiceError(SuggestionError):
    code = "ai_error"
    default_message = "Could not get AI suggestions. Please fill in the details manually."


# --- Submission ---
class UploadFailed(PlasticWatchError):
    code = "upload_failed"
    http_status = 502
    default_message = "Product image failed to upload."


class PersistFailed(PlasticWatchError):
    code = "persist_failed"
    http_status = 502
    default_message = "Your photos were uploaded but the report could not be saved. Please try again."


# --- Wizard ---
class TransitionRejected(PlasticWatchError):
    code = "transition_rejected"
    http_status = 409
    default_message = "That step is not available yet."


class ValidationFailed(PlasticWatchError):
    code = "validation_failed"
    http_status = 400
    default_message = "Please correct the highlighted fields."


# --- Review ---
class NotFound(PlasticWatchError):
    code = "not_found"
    http_status = 404
    default_message = "Contribution not found."


class InvalidReview(PlasticWatchError):
    code = "invalid_review"
    http_status = 400
    default_message = "Brand and manufacturer are required to classify."


class InvalidTransition(PlasticWatchError):
    code = "invalid_transition"
    http_status = 409
    default_message = "This contribution has already been reviewed."


class ClassificationPersistFailed(PlasticWatchError):
    code = "classification_failed"
    http_status = 502
    default_message = "Classification could not be saved. Please try again."
