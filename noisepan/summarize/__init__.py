"""Heuristic and chat-completion summarizers for post text."""