# services/__init__.py

"""
Модуль сервисов Habit Engine

Хранилище аккаунтов и сервис выполнения активностей.
"""

import logging
from typing import Optional

from .data_service import DataService, get_data_service, initialize_data_service, close_data_service
from .completion_service import (
    CompletionService, EngineError, ActivityNotFoundError, AlreadyCompletedError, CompanionNotFoundError,
    get_completion_service, initialize_completion_service
)

logger = logging.getLogger(__name__)

class ServiceManager:
    """
    Менеджер сервисов движка

    Инициализирует DataService, затем зависящий от него CompletionService,
    и закрывает их в обратном порядке.
    """

    def __init__(self):
        self.data_service: Optional[DataService] = None
        self.completion_service: Optional[CompletionService] = None
        self.initialized = False

    def initialize_services(self, data_file: str = None) -> bool:
        """Инициализация всех сервисов"""
        try:
            logger.info("🔧 Инициализация сервисов Habit Engine...")

            self.data_service = initialize_data_service(data_file)
            self.completion_service = initialize_completion_service(self.data_service)

            self.initialized = True
            logger.info("✅ Все сервисы инициализированы успешно!")
            return True

        except (OSError, ValueError) as e:
            logger.error(f"❌ Ошибка инициализации сервисов: {e}")
            self.close_services()
            return False

    def health_check(self) -> dict:
        """Проверка состояния всех сервисов"""
        health = {
            "status": "healthy",
            "services": {}
        }

        if self.data_service:
            health["services"]["data_service"] = self.data_service.health_check()

        if self.completion_service:
            health["services"]["completion_service"] = {"status": "healthy"}

        statuses = [s.get("status", "unknown") for s in health["services"].values()]
        if "error" in statuses:
            health["status"] = "error"
        elif "warning" in statuses:
            health["status"] = "warning"

        return health

    def close_services(self):
        """Закрытие всех сервисов"""
        logger.info("🛑 Закрытие сервисов...")

        self.completion_service = None
        if self.data_service:
            close_data_service()
            self.data_service = None

        self.initialized = False
        logger.info("✅ Все сервисы закрыты")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_services()

# Глобальный экземпляр менеджера сервисов
_service_manager = None

def get_service_manager() -> ServiceManager:
    """Получить глобальный менеджер сервисов"""
    global _service_manager
    if _service_manager is None:
        _service_manager = ServiceManager()
    return _service_manager

def initialize_all_services(data_file: str = None) -> bool:
    manager = get_service_manager()
    return manager.initialize_services(data_file)

def close_all_services():
    global _service_manager
    if _service_manager:
        _service_manager.close_services()
        _service_manager = None

__all__ = [
    'DataService',
    'CompletionService',
    'ServiceManager',
    'EngineError',
    'ActivityNotFoundError',
    'AlreadyCompletedError',
    'CompanionNotFoundError',
    'get_data_service',
    'get_completion_service',
    'get_service_manager',
    'initialize_all_services',
    'close_all_services'
]
