"""PCN Challenge Engine - Delivery Composer"""
from .composer import DeliveryComposer, attachment_filename, SIGN_OFF

__all__ = ["DeliveryComposer", "attachment_filename", "SIGN_OFF"]
