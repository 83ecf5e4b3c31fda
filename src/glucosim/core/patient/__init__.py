from .profile import PatientProfile, PatientProfileUpdate, TargetRange

__all__ = ["PatientProfile", "PatientProfileUpdate", "TargetRange"]
