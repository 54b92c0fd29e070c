"""
Ядро шаблонизатора: лексер, парсер, разрешение наследования и рендеринг.

Публичный API реэкспортируется пакетом stencil.
"""
