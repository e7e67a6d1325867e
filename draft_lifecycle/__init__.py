"""Сервис жизненного цикла черновиков отчётов об инспекции"""

__version__ = "1.0.0"
