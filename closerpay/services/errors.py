class WebhookError(Exception):
    """Base error for inbound webhook requests rejected at the boundary."""
    status_code = 400

class InvalidSignatureError(WebhookError):
    status_code = 401

class MalformedPayloadError(WebhookError):
    status_code = 400

class DeliveryError(Exception):
    """An outbound automation webhook attempt did not get a 2xx response."""
