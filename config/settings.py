#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration Settings - Centralisation avec Pydantic

Ce module centralise la configuration du moteur de surveillance avec:
- Validation des types et des bornes avec Pydantic
- Variables d'environnement (et fichier .env)
- Noms de variables historiques conservés (ALERT_CHECK_INTERVAL,
  DATA_RETENTION_CHECK_INTERVAL, DEFAULT_DATA_RETENTION_DAYS, EMAIL_FROM,
  FRONTEND_URL, REDIS_URL)

Toute configuration invalide est fatale au démarrage (ConfigurationError).
"""

from datetime import timedelta
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings

from shared.exceptions import ConfigurationError

_COMMON_CONFIG = {
    'env_file': '.env',
    'env_file_encoding': 'utf-8',
    'case_sensitive': False,
    'populate_by_name': True,
    'extra': 'ignore',
}


class MonitoringConfig(BaseSettings):
    """Configuration du balayage de surveillance des seuils"""
    check_interval: int = Field(default=120000, gt=0, description="Intervalle de balayage (ms)")
    dedup_window: int = Field(default=300000, gt=0, description="Fenêtre de déduplication (ms)")
    dedup_lookback: int = Field(default=10, ge=1, description="Alertes récentes examinées par réacteur")
    critical_deviation_pct: float = Field(default=20.0, ge=0.0, description="Écart (%) au-delà duquel l'alerte est critique")
    email_enabled: bool = Field(default=False, description="Activer les notifications e-mail")

    model_config = {**_COMMON_CONFIG, 'env_prefix': 'ALERT_'}

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval / 1000.0

    @property
    def dedup_window_delta(self) -> timedelta:
        return timedelta(milliseconds=self.dedup_window)


class RetentionConfig(BaseSettings):
    """Configuration de la politique de rétention"""
    check_interval: int = Field(default=86400000, gt=0, description="Intervalle de nettoyage (ms)")
    default_days: int = Field(
        default=365,
        gt=0,
        validation_alias=AliasChoices('DEFAULT_DATA_RETENTION_DAYS', 'DATA_RETENTION_DEFAULT_DAYS'),
        description="Rétention télémétrie par défaut (jours)",
    )
    alert_retention_days: int = Field(default=90, gt=0, description="Rétention des alertes acquittées (jours)")
    run_on_startup: bool = Field(default=True, description="Nettoyage immédiat au démarrage")

    model_config = {**_COMMON_CONFIG, 'env_prefix': 'DATA_RETENTION_'}

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval / 1000.0


class EmailConfig(BaseSettings):
    """Configuration SMTP"""
    host: Optional[str] = Field(None, description="Serveur SMTP")
    port: int = Field(default=587, ge=1, le=65535, description="Port SMTP")
    secure: bool = Field(default=False, description="TLS implicite (SMTPS)")
    user: Optional[str] = Field(None, description="Utilisateur SMTP")
    password: Optional[str] = Field(None, description="Mot de passe SMTP")
    from_address: Optional[str] = Field(
        None,
        validation_alias=AliasChoices('EMAIL_FROM', 'EMAIL_FROM_ADDRESS'),
        description="Expéditeur",
    )
    timeout_seconds: float = Field(default=30.0, gt=0, description="Timeout SMTP (sec)")
    dashboard_url: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices('FRONTEND_URL', 'EMAIL_DASHBOARD_URL'),
        description="Lien vers le tableau de bord",
    )
    max_concurrency: int = Field(default=5, ge=1, le=50, description="Envois simultanés max")

    model_config = {**_COMMON_CONFIG, 'env_prefix': 'EMAIL_'}


class RealtimeConfig(BaseSettings):
    """Configuration du canal temps réel"""
    redis_url: Optional[str] = Field(
        None,
        validation_alias=AliasChoices('REDIS_URL', 'REALTIME_REDIS_URL'),
        description="URL Redis pub/sub (vide = canal désactivé)",
    )
    admin_topic: str = Field(default="admin", description="Topic administrateurs")
    reactor_topic_prefix: str = Field(default="reactor", description="Préfixe des topics réacteur")

    @field_validator('redis_url')
    @classmethod
    def empty_url_disables_redis(cls, v):
        if v is not None and not v.strip():
            return None
        return v

    model_config = {**_COMMON_CONFIG, 'env_prefix': 'REALTIME_'}

    def reactor_topic(self, reactor_id: int) -> str:
        return f"{self.reactor_topic_prefix}:{reactor_id}"


class LoggingConfig(BaseSettings):
    """Configuration logging"""
    log_level: str = Field(default="INFO", description="Niveau log")
    log_format: str = Field(default="text", description="Format console (json/text)")
    log_file_path: Optional[Path] = Field(None, description="Chemin fichier log")
    log_max_size_mb: int = Field(default=100, description="Taille max log MB")
    log_backup_count: int = Field(default=5, description="Nombre backups log")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level doit être: {", ".join(valid_levels)}')
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        if v.lower() not in ('json', 'text'):
            raise ValueError('Log format doit être: json ou text')
        return v.lower()

    model_config = {**_COMMON_CONFIG, 'env_prefix': 'LOG_'}


class Settings(BaseSettings):
    """Configuration principale du moteur"""

    environment: str = Field(default="development", description="Environnement")

    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    realtime: RealtimeConfig = Field(default_factory=RealtimeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        valid_envs = ['development', 'staging', 'production', 'test']
        if v not in valid_envs:
            raise ValueError(f'Environment doit être: {", ".join(valid_envs)}')
        return v

    @model_validator(mode='after')
    def validate_email_when_enabled(self):
        if self.monitoring.email_enabled:
            missing = [name for name, value in (("EMAIL_HOST", self.email.host),
                                                ("EMAIL_FROM", self.email.from_address)) if not value]
            if missing:
                raise ValueError(f"ALERT_EMAIL_ENABLED=true requiert: {', '.join(missing)}")
        return self

    def is_production(self) -> bool:
        return self.environment == 'production'

    model_config = dict(_COMMON_CONFIG)


_settings: Optional[Settings] = None


def load_settings(**overrides) -> Settings:
    """
    Charge et valide la configuration.

    Raises:
        ConfigurationError: si une valeur est manquante ou invalide
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        config_key = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ConfigurationError(f"Invalid configuration: {e}", config_key=config_key, cause=e) from e


def get_settings() -> Settings:
    """Obtenir l'instance de configuration (chargée au premier appel)"""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Oublier l'instance en cache (tests, rechargement)"""
    global _settings
    _settings = None


def get_monitoring_config() -> MonitoringConfig:
    return get_settings().monitoring


def get_retention_config() -> RetentionConfig:
    return get_settings().retention


def get_email_config() -> EmailConfig:
    return get_settings().email


def get_realtime_config() -> RealtimeConfig:
    return get_settings().realtime


def get_logging_config() -> LoggingConfig:
    return get_settings().logging
