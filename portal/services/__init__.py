from portal.services.auth import AuthService
from portal.services.gallery import GalleryService
from portal.services.homework import HomeworkService

__all__ = ['AuthService', 'GalleryService', 'HomeworkService']
