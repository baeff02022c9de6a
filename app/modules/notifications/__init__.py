"""
Triggers de eventos, plantillas y bandeja de notificaciones.
"""
