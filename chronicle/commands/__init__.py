from ..common.abc import CompositeMetaClass
from .admin import Admin
from .base import Base


class ChronicleCommands(Admin, Base, metaclass=CompositeMetaClass):
    """Subclass all command classes"""
