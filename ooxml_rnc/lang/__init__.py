"""RELAX NG Compact language front end: lexer and parser."""
