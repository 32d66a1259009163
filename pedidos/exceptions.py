class OrderServiceError(Exception):
    """Base de los errores de negocio; el mensaje se devuelve tal cual al cliente."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(OrderServiceError):
    """Usuario, producto o pedido inexistente."""


class InvalidInputError(OrderServiceError):
    """Datos del pedido que no pasan la validación (fecha de envío, carrito, total, estado)."""


class InvalidStatusTransitionError(OrderServiceError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot change order status from {current} to {requested}")
        self.current = current
        self.requested = requested
