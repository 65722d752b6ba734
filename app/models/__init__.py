from .post import ForumPost

__all__ = [
    "ForumPost",
]
