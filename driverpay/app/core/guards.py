"""
Ownership guard for trip access.

A driver may only read or mutate trips recorded under their own user id.
"""

from driverpay.app.core.exceptions import InsufficientPermissionsError


class OwnershipGuard:
    """
    Class-based ownership guard.

    Usage:
        ownership_guard = OwnershipGuard()

        @router.get("/trips/{trip_id}")
        async def get_trip(trip_id: int, current_user: dict = Depends(get_current_user), ...):
            trip = await store.get(trip_id)
            ownership_guard.enforce(trip.user_id, current_user, "trip")
    """

    def enforce(
        self,
        resource_owner_id: str,
        current_user: dict,
        resource_name: str = "resource"
    ):
        """
        Raise 403 unless the current user owns the resource.

        Args:
            resource_owner_id: Owner ID of the resource
            current_user: Current authenticated user
            resource_name: Name of resource for error message
        """
        if str(resource_owner_id) != str(current_user.get("user_id")):
            raise InsufficientPermissionsError(
                message=f"Access denied. You do not have permission to access this {resource_name}.",
                details={"resource": resource_name}
            )


ownership_guard = OwnershipGuard()
