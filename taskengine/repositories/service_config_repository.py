from typing import Optional
from taskengine.repositories.base_repository import BaseRepository
from taskengine.models.service_config import ServiceConfiguration

class ServiceConfigRepository(BaseRepository):
    def get(self, config_id: str) -> Optional[ServiceConfiguration]:
        return self.session.get(ServiceConfiguration, config_id)

    def create(self, config: ServiceConfiguration) -> ServiceConfiguration:
        return self._save(config)
