"""
Route and registration validation.
Invalid configuration is rejected before a vehicle enters the motion model.
"""

from typing import List, Optional

from .models.route import Route


class RouteValidationError(ValueError):
    """Raised when a route or vehicle registration cannot be simulated"""

    def __init__(self, subject: str, errors: List[str]):
        self.subject = subject
        self.errors = errors
        super().__init__(f"{subject}: " + "; ".join(errors))


class RouteValidator:
    """Validates routes and vehicle registrations"""

    @staticmethod
    def validate_route(route: Optional[Route]) -> List[str]:
        """
        Validate route structure.
        Returns list of validation errors (empty if valid).

        - A route needs at least two stops
        - Stop sequences must be contiguous starting at 0
        - Stop ids must be unique within the route
        - Coordinates must be valid latitude/longitude values
        """
        if route is None:
            return ["route is missing"]

        errors = []
        if route.stop_count < 2:
            errors.append(f"route {route.id} has {route.stop_count} stops, at least 2 required")

        sequences = [stop.sequence for stop in route.stops]
        if sequences != list(range(len(sequences))):
            errors.append(f"route {route.id} stop sequences {sequences} are not contiguous from 0")

        stop_ids = [stop.id for stop in route.stops]
        if len(set(stop_ids)) != len(stop_ids):
            errors.append(f"route {route.id} has duplicate stop ids")

        for stop in route.stops:
            if not -90 <= stop.latitude <= 90 or not -180 <= stop.longitude <= 180:
                errors.append(
                    f"stop {stop.id} has invalid coordinate ({stop.latitude}, {stop.longitude})"
                )

        return errors

    @staticmethod
    def validate_registration(vehicle_id: str, route: Optional[Route],
                              start_stop_index: int, base_speed_kmh: float) -> List[str]:
        errors = RouteValidator.validate_route(route)
        if not vehicle_id:
            errors.append("vehicle id is empty")
        if route is not None and route.stop_count and not 0 <= start_stop_index < route.stop_count:
            errors.append(
                f"start stop index {start_stop_index} outside route of {route.stop_count} stops"
            )
        if base_speed_kmh < 0:
            errors.append(f"base speed {base_speed_kmh} km/h is negative")
        return errors

    @staticmethod
    def ensure_valid_route(route: Optional[Route]):
        errors = RouteValidator.validate_route(route)
        if errors:
            raise RouteValidationError(f"route {getattr(route, 'id', None)}", errors)
