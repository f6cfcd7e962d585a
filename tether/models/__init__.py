from .user import User, NotificationChannel
from .vault import Vault, VaultMembership
from .contact import Contact, ImportantDateType, ImportantDate
