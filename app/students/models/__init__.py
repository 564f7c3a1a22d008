from .students import Student, StudentShift

__all__ = ["Student", "StudentShift"]
