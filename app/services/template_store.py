# =====================================================
# FILE: app/services/template_store.py
# Localized message templates for OTP and notification delivery
# =====================================================

import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"
PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class MessageType:
    SIGNATURE_OTP_SMS = "signatureOtpSms"
    SIGNATURE_OTP_EMAIL = "signatureOtpEmail"
    DOCUMENT_COMPLETED = "documentCompleted"
    PACKAGE_REJECTED = "packageRejected"
    PARTICIPANT_REASSIGNED = "participantReassigned"
    REASSIGNMENT_RECORDED = "reassignmentRecorded"
    RECEIVER_ADDED = "receiverAdded"
    PARTICIPANT_ACTION = "participantAction"


SMS_CONTENT: Dict[str, Dict[str, Dict[str, str]]] = {
    MessageType.SIGNATURE_OTP_SMS: {
        "en": {
            "message": "Hi {{recipient_name}}, your signature OTP for document \"{{document_name}}\" is: {{otp}}. Valid for 1 minute. Do not share this code."
        },
        "es": {
            "message": "Hola {{recipient_name}}, tu código OTP de firma para el documento \"{{document_name}}\" es: {{otp}}. Válido por 1 minuto. No compartas este código."
        },
        "fr": {
            "message": "Bonjour {{recipient_name}}, votre code OTP de signature pour le document \"{{document_name}}\" est : {{otp}}. Valable 1 minute. Ne partagez pas ce code."
        },
        "de": {
            "message": "Hallo {{recipient_name}}, Ihr Signatur-OTP-Code für das Dokument \"{{document_name}}\" lautet: {{otp}}. Gültig für 1 Minute. Teilen Sie diesen Code nicht."
        },
        "it": {
            "message": "Ciao {{recipient_name}}, il tuo codice OTP per la firma del documento \"{{document_name}}\" è: {{otp}}. Valido per 1 minuto. Non condividere questo codice."
        },
        "el": {
            "message": "Γεια σας {{recipient_name}}, ο κωδικός OTP υπογραφής σας για το έγγραφο \"{{document_name}}\" είναι: {{otp}}. Ισχύει για 1 λεπτό. Μην μοιραστείτε αυτόν τον κωδικό."
        },
    },
}

EMAIL_CONTENT: Dict[str, Dict[str, Dict[str, str]]] = {
    MessageType.SIGNATURE_OTP_EMAIL: {
        "en": {
            "subject": "Your Signature Verification Code",
            "greeting": "Hello {{recipient_name}},",
            "message": "Use the code {{otp}} to securely complete your signature on \"{{document_name}}\".",
            "footer": "For your security, this code expires in 1 minute. Do not share this code with anyone.",
        },
        "es": {
            "subject": "Tu código de verificación de firma",
            "greeting": "Hola {{recipient_name}},",
            "message": "Usa el código {{otp}} para completar de forma segura tu firma en \"{{document_name}}\".",
            "footer": "Por tu seguridad, este código expira en 1 minuto. No compartas este código con nadie.",
        },
        "fr": {
            "subject": "Votre code de vérification de signature",
            "greeting": "Bonjour {{recipient_name}},",
            "message": "Utilisez le code {{otp}} pour finaliser en toute sécurité votre signature sur « {{document_name}} ».",
            "footer": "Pour votre sécurité, ce code expire dans 1 minute. Ne partagez ce code avec personne.",
        },
        "de": {
            "subject": "Ihr Bestätigungscode für die Unterschrift",
            "greeting": "Hallo {{recipient_name}},",
            "message": "Verwenden Sie den Code {{otp}}, um Ihre Unterschrift auf „{{document_name}}“ sicher abzuschließen.",
            "footer": "Zu Ihrer Sicherheit verfällt dieser Code in 1 Minute. Teilen Sie diesen Code mit niemandem.",
        },
        "it": {
            "subject": "Il tuo codice di verifica per la firma",
            "greeting": "Ciao {{recipient_name}},",
            "message": "Usa il codice {{otp}} per completare in modo sicuro la tua firma su \"{{document_name}}\".",
            "footer": "Per la tua sicurezza, questo codice scade tra 1 minuto. Non condividere questo codice con nessuno.",
        },
        "el": {
            "subject": "Ο κωδικός επαλήθευσης της υπογραφής σας",
            "greeting": "Γεια σας {{recipient_name}},",
            "message": "Χρησιμοποιήστε τον κωδικό {{otp}} για να ολοκληρώσετε με ασφάλεια την υπογραφή σας στο «{{document_name}}».",
            "footer": "Για την ασφάλειά σας, αυτός ο κωδικός λήγει σε 1 λεπτό. Μην μοιράζεστε αυτόν τον κωδικό με κανέναν.",
        },
    },
    MessageType.DOCUMENT_COMPLETED: {
        "en": {
            "subject": "Document Completed: {{document_name}}",
            "greeting": "Hello {{recipient_name}},",
            "message": "Good news! \"{{document_name}}\", initiated by {{sender_name}}, has been completed by all participants.",
            "footer": "A finalized copy is available for your records: {{action_link}}",
        },
        "es": {
            "subject": "Documento completado: {{document_name}}",
            "greeting": "Hola {{recipient_name}},",
            "message": "¡Buenas noticias! \"{{document_name}}\", iniciado por {{sender_name}}, ha sido completado por todos los participantes.",
            "footer": "Hay una copia final disponible para tus registros: {{action_link}}",
        },
    },
    MessageType.PACKAGE_REJECTED: {
        "en": {
            "subject": "Document Rejected: {{document_name}}",
            "greeting": "Hello {{recipient_name}},",
            "message": "{{actor_name}} has rejected \"{{document_name}}\". Reason: {{reason}}",
            "footer": "No further actions can be taken on this document.",
        },
    },
    MessageType.PARTICIPANT_REASSIGNED: {
        "en": {
            "subject": "Action Required: {{document_name}}",
            "greeting": "Hello {{recipient_name}},",
            "message": "{{actor_name}} has reassigned their tasks on \"{{document_name}}\" to you. Reason: {{reason}}",
            "footer": "Open the document to continue: {{action_link}}",
        },
    },
    MessageType.REASSIGNMENT_RECORDED: {
        "en": {
            "subject": "Participant Reassigned: {{document_name}}",
            "greeting": "Hello {{recipient_name}},",
            "message": "{{actor_name}} reassigned their tasks on \"{{document_name}}\" to {{new_participant_name}}. Reason: {{reason}}",
            "footer": "Track the document: {{action_link}}",
        },
    },
    MessageType.RECEIVER_ADDED: {
        "en": {
            "subject": "You have been added to {{document_name}}",
            "greeting": "Hello {{recipient_name}},",
            "message": "{{actor_name}} added you as a receiver of \"{{document_name}}\". No action is required from you.",
            "footer": "View the document: {{action_link}}",
        },
    },
    MessageType.PARTICIPANT_ACTION: {
        "en": {
            "subject": "Progress Update on: {{document_name}}",
            "greeting": "Hello {{recipient_name}},",
            "message": "{{actor_name}} has {{action}} their part of \"{{document_name}}\". Completed: {{completed_names}}. Pending: {{pending_names}}.",
            "footer": "Track the document progress: {{action_link}}",
        },
    },
}


def render_template(template: str, **values) -> str:
    """Replace {{placeholder}} tokens; unknown placeholders are left empty"""
    return PLACEHOLDER_PATTERN.sub(lambda m: str(values.get(m.group(1), "")), template)


class TemplateStore(ABC):
    """Localized template lookup with English fallback"""

    @abstractmethod
    def get_content(self, message_type: str, language: Optional[str] = None) -> Dict[str, str]:
        ...


class InMemoryTemplateStore(TemplateStore):
    """
    Templates bundled with the service.

    Unsupported language codes fall back to English; a language missing
    for one message type falls back to that type's English entry.
    """

    def __init__(self, supported_languages: Iterable[str], content: Optional[Dict] = None):
        self.supported_languages = set(supported_languages)
        self.content = content if content is not None else {**SMS_CONTENT, **EMAIL_CONTENT}

    def get_content(self, message_type: str, language: Optional[str] = None) -> Dict[str, str]:
        if message_type not in self.content:
            raise KeyError(f'Message type "{message_type}" not found in template configuration')

        lang = language if language in self.supported_languages else DEFAULT_LANGUAGE
        by_language = self.content[message_type]
        if lang not in by_language:
            logger.debug(f"No '{lang}' template for {message_type}, using {DEFAULT_LANGUAGE}")
        return by_language.get(lang) or by_language[DEFAULT_LANGUAGE]
