#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Exceptions personnalisées - Gestion d'erreur du moteur de surveillance

Taxonomie utilisée par le pipeline monitoring + rétention :
- ConfigurationError : configuration invalide, fatale au démarrage
- TransientStoreError : incident réseau/DB, le réacteur ou la règle est
  ignoré pour ce cycle et retenté au tick suivant
- AlertPersistenceError : l'alerte n'a pas pu être persistée (rien n'est publié)
- DispatchError : échec d'envoi pour UN destinataire, isolé des autres

"Données indisponibles" n'est pas une erreur : c'est l'état normal d'un
réacteur qui n'a pas encore remonté son premier échantillon.
"""

import logging
from typing import Dict, Any, Optional
from enum import Enum

logger = logging.getLogger(__name__)


class ErrorCode(Enum):
    """Codes d'erreur standardisés"""
    # Configuration
    CONFIG_INVALID = "CONFIG_INVALID"
    CONFIG_MISSING = "CONFIG_MISSING"

    # Stores externes
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    STORE_TIMEOUT = "STORE_TIMEOUT"
    ALERT_PERSISTENCE_FAILED = "ALERT_PERSISTENCE_FAILED"

    # Données
    DATA_NOT_FOUND = "DATA_NOT_FOUND"
    UNKNOWN_FIELD = "UNKNOWN_FIELD"

    # Notifications
    DISPATCH_FAILED = "DISPATCH_FAILED"

    # Ordonnancement
    SWEEP_IN_PROGRESS = "SWEEP_IN_PROGRESS"


class BioMonitorException(Exception):
    """Exception de base pour le moteur Bio-Monitor"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause

        # Les appelants loguent avec le contexte, ici seulement en debug
        logger.debug(f"Exception: {error_code.value if error_code else 'UNKNOWN'} - {message}",
                     extra={'details': details, 'cause': str(cause) if cause else None})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code.value if self.error_code else "UNKNOWN",
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(BioMonitorException):
    """Erreur de configuration (intervalle, seuil, SMTP...)"""
    def __init__(self, message: str, config_key: str = None, **kwargs):
        super().__init__(message, ErrorCode.CONFIG_INVALID, {'config_key': config_key}, **kwargs)


class TransientStoreError(BioMonitorException):
    """Incident transitoire sur un store externe"""
    def __init__(self, message: str, store: str = None, operation: str = None, **kwargs):
        super().__init__(message, ErrorCode.STORE_UNAVAILABLE,
                         {'store': store, 'operation': operation}, **kwargs)


class AlertPersistenceError(BioMonitorException):
    """Création d'alerte impossible : l'opération complète est abandonnée"""
    def __init__(self, reactor_id: int, field_name: str, **kwargs):
        message = f"Failed to persist alert for reactor {reactor_id} ({field_name})"
        super().__init__(message, ErrorCode.ALERT_PERSISTENCE_FAILED,
                         {'reactor_id': reactor_id, 'field_name': field_name}, **kwargs)


class DispatchError(BioMonitorException):
    """Échec d'envoi d'une notification à un destinataire"""
    def __init__(self, message: str, channel: str, recipient: str = None, **kwargs):
        super().__init__(message, ErrorCode.DISPATCH_FAILED,
                         {'channel': channel, 'recipient': recipient}, **kwargs)


class ReactorNotFoundError(BioMonitorException):
    """Réacteur introuvable"""
    def __init__(self, reactor_id: int, **kwargs):
        super().__init__(f"Reactor not found: {reactor_id}", ErrorCode.DATA_NOT_FOUND,
                         {'reactor_id': reactor_id}, **kwargs)


class UnknownFieldError(BioMonitorException):
    """Champ absent du schéma du type de flux"""
    def __init__(self, stream_kind: str, field_name: str, **kwargs):
        message = f"Unknown field '{field_name}' for stream kind '{stream_kind}'"
        super().__init__(message, ErrorCode.UNKNOWN_FIELD,
                         {'stream_kind': stream_kind, 'field_name': field_name}, **kwargs)


class SweepInProgressError(BioMonitorException):
    """Un balayage du même job est déjà en cours"""
    def __init__(self, job_id: str, **kwargs):
        super().__init__(f"Sweep '{job_id}' is already running", ErrorCode.SWEEP_IN_PROGRESS,
                         {'job_id': job_id}, **kwargs)


def convert_standard_exception(exc: Exception, context: str = None) -> BioMonitorException:
    """Convertir une exception standard en exception du domaine"""

    if isinstance(exc, BioMonitorException):
        return exc

    context_msg = f" during {context}" if context else ""

    # Erreurs réseau / timeouts : transitoires par nature
    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return TransientStoreError(f"Store error{context_msg}: {str(exc)}", operation=context, cause=exc)

    return BioMonitorException(f"Unexpected error{context_msg}: {str(exc)}", cause=exc)
