from __future__ import annotations

from typing import Any

GENERAL_TASK_TYPE = "General"


def default_columns() -> list[dict[str, Any]]:
  return [
    {"title": "Backlog", "type": "backlog", "order": 0, "color": "#94A3B8", "wipLimit": None},
    {"title": "Ready", "type": "todo", "order": 1, "color": "#3B82F6", "wipLimit": None},
    {"title": "In Progress", "type": "inprogress", "order": 2, "color": "#F59E0B", "wipLimit": 5},
    {"title": "Code Review", "type": "review", "order": 3, "color": "#8B5CF6", "wipLimit": 3},
    {"title": "Testing", "type": "review", "order": 4, "color": "#EC4899", "wipLimit": 3},
    {"title": "Blocked", "type": "blocked", "order": 5, "color": "#EF4444", "wipLimit": None},
    {"title": "Done", "type": "done", "order": 6, "color": "#10B981", "wipLimit": None},
  ]


def default_task_types() -> list[dict[str, Any]]:
  rows = [
    ("DSA Problem", "#3B82F6", "🧠", "Data structures and algorithms practice", 0),
    ("HR Question", "#8B5CF6", "👥", "Human resources and culture-fit questions", 1),
    ("System Design", "#10B981", "🏗️", "Large-scale architecture design", 2),
    ("Coding Challenge", "#F59E0B", "💻", "Timed coding exercises", 3),
    ("Behavioral", "#EF4444", "💬", "Behavioral interview stories", 4),
    ("Project", "#EC4899", "📁", "Portfolio and side projects", 5),
    ("Research", "#14B8A6", "🔍", "Company and role research", 6),
    ("Revision", "#6366F1", "📚", "Revising topics already covered", 7),
    ("Mock Interview", "#F97316", "🎤", "Practice interviews", 8),
    ("Algorithm", "#8B5CF6", "⚡", "Algorithm deep dives", 9),
    ("Database", "#10B981", "🗄️", "Database design and queries", 10),
    ("API Design", "#F59E0B", "🔌", "API design and integration", 11),
    ("Security", "#EF4444", "🔒", "Security concepts", 12),
    ("Testing", "#8B5CF6", "🧪", "Testing strategy and practice", 13),
    ("Deployment", "#10B981", "🚀", "Deployment and DevOps", 14),
    ("Documentation", "#6B7280", "📄", "Writing documentation", 15),
    ("Bug Fix", "#DC2626", "🐛", "Debugging exercises", 16),
    ("Code Review", "#3B82F6", "👁️", "Reviewing code", 17),
    ("Refactoring", "#8B5CF6", "♻️", "Refactoring practice", 18),
    ("Performance", "#F59E0B", "⚡", "Performance optimization", 19),
    (GENERAL_TASK_TYPE, "#6B7280", "📝", "General tasks", 100),
  ]
  return [
    {"name": name, "color": color, "icon": icon, "description": desc, "order": order, "isActive": True}
    for name, color, icon, desc, order in rows
  ]


def default_labels() -> list[dict[str, Any]]:
  rows = [
    ("Bug", "#EF4444"),
    ("Feature", "#10B981"),
    ("Enhancement", "#3B82F6"),
    ("Documentation", "#8B5CF6"),
    ("Question", "#F59E0B"),
    ("Urgent", "#DC2626"),
    ("High Priority", "#F59E0B"),
    ("Low Priority", "#6B7280"),
    ("In Progress", "#3B82F6"),
    ("Ready for Review", "#8B5CF6"),
  ]
  return [{"name": name, "color": color, "isActive": True} for name, color in rows]


def default_settings() -> dict[str, Any]:
  return {
    "allowComments": True,
    "allowAttachments": True,
    "allowTimeTracking": False,
    "enableDueDates": True,
    "enableLabels": True,
    "enableChecklists": False,
    "enableVoting": False,
    "enableCustomFields": False,
    "defaultView": "board",
    "cardCover": False,
  }
