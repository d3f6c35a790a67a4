"""TutorAssist — tutoring practice backend (workspaces, question bank, review scheduling).

Invariants:
    - Importing the package has no side effects; the app is built in main.py
"""
