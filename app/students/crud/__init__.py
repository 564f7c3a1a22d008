"""Student CRUD Package"""
from .users import get_student_profile, get_student_schedule
