"""Схемы входа/выхода (pydantic)"""
