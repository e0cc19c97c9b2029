"""Ядро движка: модели и чистые функции пересчёта"""
