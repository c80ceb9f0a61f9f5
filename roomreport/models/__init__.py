from roomreport.models.auth import User, Role, MANAGEMENT_ROLES
from roomreport.models.room import Room
from roomreport.models.video import Video

__all__ = ["User", "Role", "MANAGEMENT_ROLES", "Room", "Video"]
