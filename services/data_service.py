# services/data_service.py

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Any

from config import config
from core.models import (
    Activity, ActivityLog, AutoTriggerRule, Companion, Pillar, Species, ValidationError,
    normalize_key, validate_enum_value
)
from core.weights import PillarWeights, WeightPreset, weights_for_preset
from utils.datetime_utils import EvaluationClock

logger = logging.getLogger(__name__)

class DataServiceConfig:
    """Конфигурация для сервиса данных"""

    DATA_DIR = config.data_dir
    USERS_DATA_FILE = 'engine_data.json'
    EXPORT_VERSION = "1.0"

@dataclass
class UserAccount:
    """Всё состояние одного аккаунта"""
    user_id: int
    activities: Dict[str, Activity] = field(default_factory=dict)
    logs: List[ActivityLog] = field(default_factory=list)
    companions: Dict[Species, Companion] = field(default_factory=dict)
    weights: Dict[Pillar, PillarWeights] = field(default_factory=dict)
    custom_species: Dict[str, Species] = field(default_factory=dict)
    preset: WeightPreset = WeightPreset.BALANCED
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @classmethod
    def create(cls, user_id: int) -> "UserAccount":
        """Новый аккаунт: веса BALANCED и по компаньону каждого вида"""
        return cls(
            user_id=user_id,
            companions={species: Companion(species) for species in Species},
            weights=weights_for_preset(WeightPreset.BALANCED)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "activities": [activity.to_dict() for activity in self.activities.values()],
            "logs": [log.to_dict() for log in self.logs],
            "companions": [companion.to_dict() for companion in self.companions.values()],
            "weights": {pillar.value: weights.to_dict() for pillar, weights in self.weights.items()},
            "custom_species": {key: species.value for key, species in self.custom_species.items()},
            "preset": self.preset.value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserAccount":
        account = cls.create(int(data["user_id"]))
        for item in data.get("activities", []):
            activity = Activity.from_dict(item)
            account.activities[activity.activity_id] = activity
        account.logs = [ActivityLog.from_dict(item) for item in data.get("logs", [])]
        for item in data.get("companions", []):
            companion = Companion.from_dict(item)
            account.companions[companion.species] = companion
        for item in data.get("weights", {}).values():
            weights = PillarWeights.from_dict(item)
            account.weights[weights.pillar] = weights
        account.custom_species = {
            key: Species(value) for key, value in data.get("custom_species", {}).items()
        }
        account.preset = WeightPreset(data.get("preset", WeightPreset.BALANCED.value))
        return account

class DataService:
    """
    In-memory хранилище аккаунтов

    Возможности:
    - Активности, записи о выполнении, компаньоны и веса по аккаунтам
    - Блокировка на аккаунт (последовательная согласованность)
    - Атомарная проверка-и-вставка выполнения по (activity_id, дата)
    - Экспорт и сохранение в JSON
    """

    def __init__(self, data_file: str = None):
        self.config = DataServiceConfig()
        self.data_file = self.config.DATA_DIR / data_file if data_file else None

        self.accounts: Dict[int, UserAccount] = {}
        self.cache_lock = threading.RLock()

        # Метрики
        self.last_save_time: Optional[float] = None
        self.total_operations = 0
        self.failed_operations = 0

        if self.data_file is not None:
            self._load_all_users()

    def _load_all_users(self):
        """Загрузка аккаунтов из файла"""
        if not self.data_file.exists():
            logger.info("📂 Файл данных не найден, начинаем с пустого хранилища")
            return

        with open(self.data_file, 'r', encoding='utf-8') as f:
            data = json.load(f)

        with self.cache_lock:
            for user_id_str, account_data in data.items():
                try:
                    self.accounts[int(user_id_str)] = UserAccount.from_dict(account_data)
                except (ValueError, KeyError, ValidationError) as e:
                    logger.error(f"❌ Ошибка загрузки пользователя {user_id_str}: {e}")
                    self.failed_operations += 1

        logger.info(f"📂 Загружено {len(self.accounts)} аккаунтов из {self.data_file}")

    # ===== АККАУНТЫ =====

    def get_account(self, user_id: int) -> UserAccount:
        """Аккаунт пользователя (создаётся при первом обращении)"""
        with self.cache_lock:
            account = self.accounts.get(user_id)
            if account is None:
                account = UserAccount.create(user_id)
                self.accounts[user_id] = account
                logger.debug(f"👤 Создан аккаунт {user_id}")
            self.total_operations += 1
            return account

    def account_lock(self, user_id: int) -> threading.RLock:
        """Блокировка аккаунта для атомарных пересчётов"""
        return self.get_account(user_id).lock

    def user_exists(self, user_id: int) -> bool:
        with self.cache_lock:
            return user_id in self.accounts

    def get_users_count(self) -> int:
        return len(self.accounts)

    # ===== АКТИВНОСТИ =====

    def save_activity(self, activity: Activity) -> Activity:
        account = self.get_account(activity.user_id)
        with account.lock:
            account.activities[activity.activity_id] = activity
        logger.debug(f"💾 Активность {activity.activity_id} сохранена")
        return activity

    def get_activity(self, user_id: int, activity_id: str) -> Optional[Activity]:
        account = self.get_account(user_id)
        with account.lock:
            return account.activities.get(activity_id)

    def get_activities(self, user_id: int, include_archived: bool = False) -> Dict[str, Activity]:
        account = self.get_account(user_id)
        with account.lock:
            return {
                activity_id: activity for activity_id, activity in account.activities.items()
                if include_archived or not activity.archived
            }

    def delete_activity(self, user_id: int, activity_id: str) -> bool:
        """Удаление активности; записи о выполнении сохраняются"""
        account = self.get_account(user_id)
        with account.lock:
            if account.activities.pop(activity_id, None) is None:
                return False
        logger.info(f"🗑️ Активность {activity_id} удалена")
        return True

    def get_rules(self, user_id: int) -> List[AutoTriggerRule]:
        account = self.get_account(user_id)
        with account.lock:
            return [a.auto_trigger for a in account.activities.values() if a.auto_trigger is not None]

    # ===== ВЫПОЛНЕНИЯ =====

    def get_logs(self, user_id: int) -> List[ActivityLog]:
        account = self.get_account(user_id)
        with account.lock:
            return list(account.logs)

    def logs_for_day(self, user_id: int, day: date, clock: EvaluationClock,
                     activity_id: Optional[str] = None) -> List[ActivityLog]:
        return [
            log for log in self.get_logs(user_id)
            if clock.local_date(log.completed_at) == day
            and (activity_id is None or log.activity_id == activity_id)
        ]

    def has_completion(self, user_id: int, activity_id: str, day: date, clock: EvaluationClock) -> bool:
        return bool(self.logs_for_day(user_id, day, clock, activity_id))

    def insert_completion(self, user_id: int, log: ActivityLog, clock: EvaluationClock,
                          single_writer: bool = True) -> bool:
        """
        Добавить запись о выполнении.

        При single_writer проверка "уже выполнено за день" и вставка идут
        под одной блокировкой; проигравший получает False.
        """
        account = self.get_account(user_id)
        with account.lock:
            day = clock.local_date(log.completed_at)
            if single_writer and self.has_completion(user_id, log.activity_id, day, clock):
                logger.debug(f"Активность {log.activity_id} уже выполнена {day}")
                return False
            account.logs.append(log)
            self.total_operations += 1
            return True

    def remove_latest_completion(self, user_id: int, activity_id: str, day: date,
                                 clock: EvaluationClock) -> Optional[ActivityLog]:
        """Удалить последнюю запись активности за день"""
        account = self.get_account(user_id)
        with account.lock:
            day_logs = self.logs_for_day(user_id, day, clock, activity_id)
            if not day_logs:
                return None
            latest = max(day_logs, key=lambda log: log.completed_at)
            account.logs.remove(latest)
            self.total_operations += 1
            return latest

    # ===== КОМПАНЬОНЫ И ВЕСА =====

    def get_companion(self, user_id: int, species: Species) -> Optional[Companion]:
        account = self.get_account(user_id)
        with account.lock:
            return account.companions.get(species)

    def get_companions(self, user_id: int) -> List[Companion]:
        account = self.get_account(user_id)
        with account.lock:
            return list(account.companions.values())

    def save_companion(self, user_id: int, companion: Companion):
        account = self.get_account(user_id)
        with account.lock:
            account.companions[companion.species] = companion

    def get_custom_species(self, user_id: int) -> Dict[str, Species]:
        account = self.get_account(user_id)
        with account.lock:
            return dict(account.custom_species)

    def map_custom_sub_category(self, user_id: int, key: str, species) -> Species:
        """Привязать пользовательскую подкатегорию к компаньону"""
        species = validate_enum_value(species, Species, "species")
        account = self.get_account(user_id)
        with account.lock:
            account.custom_species[normalize_key(key)] = species
        return species

    def get_weights(self, user_id: int, pillar: Pillar) -> PillarWeights:
        account = self.get_account(user_id)
        with account.lock:
            return account.weights[pillar]

    def save_weights(self, user_id: int, weights: PillarWeights, preset: Optional[WeightPreset] = None):
        account = self.get_account(user_id)
        with account.lock:
            account.weights[weights.pillar] = weights
            if preset is not None:
                account.preset = preset

    # ===== ЭКСПОРТ И СОХРАНЕНИЕ =====

    def export_user_data(self, user_id: int) -> Optional[bytes]:
        """JSON-экспорт аккаунта"""
        with self.cache_lock:
            account = self.accounts.get(user_id)
        if account is None:
            logger.warning(f"⚠️ Пользователь {user_id} не найден для экспорта")
            return None

        with account.lock:
            export_data = {
                "export_info": {
                    "format": "json",
                    "version": self.config.EXPORT_VERSION,
                    "exported_at": datetime.now().isoformat(),
                    "user_id": user_id
                },
                "user_data": account.to_dict()
            }

        logger.info(f"📤 JSON экспорт для пользователя {user_id} подготовлен")
        return json.dumps(export_data, ensure_ascii=False, indent=2).encode('utf-8')

    def save_all_to_disk(self) -> bool:
        """Атомарное сохранение через временный файл"""
        if self.data_file is None:
            logger.debug("Файл данных не задан, сохранение пропущено")
            return False

        try:
            with self.cache_lock:
                data_to_save = {str(user_id): account.to_dict() for user_id, account in self.accounts.items()}

            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            temp_file = self.data_file.with_suffix('.tmp')
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(data_to_save, f, ensure_ascii=False, indent=2)
            temp_file.replace(self.data_file)

            self.last_save_time = time.time()
            logger.info(f"💾 Данные сохранены ({len(data_to_save)} аккаунтов)")
            return True

        except OSError as e:
            logger.error(f"❌ Ошибка сохранения данных: {e}")
            self.failed_operations += 1
            raise

    # ===== МЕТРИКИ =====

    def get_service_metrics(self) -> Dict[str, Any]:
        return {
            "users_count": len(self.accounts),
            "logs_count": sum(len(account.logs) for account in self.accounts.values()),
            "total_operations": self.total_operations,
            "failed_operations": self.failed_operations,
            "last_save_time": self.last_save_time
        }

    def health_check(self) -> Dict[str, Any]:
        status = "warning" if self.failed_operations else "healthy"
        return {"status": status, "metrics": self.get_service_metrics()}

    def close(self):
        if self.data_file is not None:
            self.save_all_to_disk()
        logger.info("📂 DataService закрыт")

# Глобальный экземпляр
_global_data_service = None

def get_data_service() -> DataService:
    """Получить глобальный экземпляр DataService"""
    global _global_data_service
    if _global_data_service is None:
        _global_data_service = DataService()
    return _global_data_service

def initialize_data_service(data_file: str = None) -> DataService:
    """Инициализация глобального DataService"""
    global _global_data_service
    _global_data_service = DataService(data_file)
    return _global_data_service

def close_data_service():
    """Закрытие глобального DataService"""
    global _global_data_service
    if _global_data_service:
        _global_data_service.close()
        _global_data_service = None
