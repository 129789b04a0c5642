from .permissions import PermissionsController, GrantPreview, SignedOperation

__all__ = ["PermissionsController", "GrantPreview", "SignedOperation"]
