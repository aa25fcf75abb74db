"""GUI tool plugins, one ``*_tool.py`` module per tool."""
