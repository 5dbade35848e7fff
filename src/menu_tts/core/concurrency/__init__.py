from menu_tts.core.concurrency.single_flight import SingleFlight

__all__ = ["SingleFlight"]
