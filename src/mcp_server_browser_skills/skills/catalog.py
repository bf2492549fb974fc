"""Built-in skill catalog seeded into every new store.

Placeholders such as ``{email}`` are filled from the execution context.
"""

from .models import SkillCategory, SkillDifficulty, SkillSpec

DEFAULT_SKILLS: list[dict] = [
    # Navigation
    {
        "name": "Open Login Page",
        "description": "Navigate to the login page and check its fields",
        "category": SkillCategory.NAVIGATION,
        "difficulty": SkillDifficulty.BASIC,
        "actions": [
            {"type": "navigate", "url": "", "description": "Navigate to the application url"},
            {"type": "screenshot", "filename": "login-page", "description": "Capture the login page"},
            {
                "type": "wait",
                "selector": 'input[type="email"], input[name="email"]',
                "timeout": 5000,
                "description": "Wait for the email field",
            },
        ],
    },
    {
        "name": "Sign In",
        "description": "Log in with the credentials supplied in the context",
        "category": SkillCategory.NAVIGATION,
        "difficulty": SkillDifficulty.INTERMEDIATE,
        "actions": [
            {"type": "fill", "selector": 'input#email, input[type="email"]', "text": "{email}", "description": "Fill email"},
            {"type": "fill", "selector": 'input[type="password"], input[name="password"]', "text": "{password}", "description": "Fill password"},
            {"type": "click", "selector": 'button[type="submit"], input[type="submit"], .login-btn', "description": "Click sign in"},
            {"type": "wait", "timeout": 3000, "description": "Wait for the redirect"},
            {"type": "screenshot", "filename": "after-login", "description": "Capture the landing page"},
        ],
    },
    # Interface
    {
        "name": "Explore Dashboard",
        "description": "Identify the main dashboard elements",
        "category": SkillCategory.INTERFACE,
        "difficulty": SkillDifficulty.BASIC,
        "actions": [
            {"type": "extract", "extract_field": "title", "description": "Read the page title"},
            {"type": "extract", "extract_field": "url", "description": "Read the current url"},
            {"type": "screenshot", "filename": "dashboard", "description": "Capture the dashboard"},
        ],
    },
    {
        "name": "Map Main Menu",
        "description": "Locate and map the navigation menu items",
        "category": SkillCategory.INTERFACE,
        "difficulty": SkillDifficulty.INTERMEDIATE,
        "actions": [
            {"type": "extract", "selector": "nav, .menu, .sidebar", "extract_field": "text", "description": "Read the menu text"},
            {"type": "hover", "selector": "nav a, .menu a", "description": "Hover over menu items"},
            {"type": "screenshot", "filename": "menu-hover", "description": "Capture the hovered menu"},
        ],
    },
    # Tasks
    {
        "name": "Open Task List",
        "description": "Navigate to the tasks section",
        "category": SkillCategory.TASKS,
        "difficulty": SkillDifficulty.BASIC,
        "actions": [
            {"type": "click", "selector": 'a[href*="task"], .tasks-link', "description": "Click the tasks link"},
            {"type": "wait", "timeout": 2000, "description": "Wait for the list to load"},
            {"type": "screenshot", "filename": "tasks-list", "description": "Capture the task list"},
        ],
    },
    {
        "name": "Create New Task",
        "description": "Fill and capture the task creation form",
        "category": SkillCategory.TASKS,
        "difficulty": SkillDifficulty.ADVANCED,
        "actions": [
            {"type": "click", "selector": '.new-task, .add-task, button[title*="New"]', "description": "Click new task"},
            {"type": "wait", "selector": 'input[name*="title"]', "timeout": 3000, "description": "Wait for the form"},
            {"type": "fill", "selector": 'input[name*="title"]', "text": "{task_title}", "description": "Fill the title"},
            {"type": "fill", "selector": 'textarea[name*="description"]', "text": "{task_description}", "description": "Fill the description"},
            {"type": "screenshot", "filename": "new-task-form", "description": "Capture the filled form"},
        ],
    },
    # Data
    {
        "name": "Extract Table Data",
        "description": "Capture tabular information from the page",
        "category": SkillCategory.DATA,
        "difficulty": SkillDifficulty.INTERMEDIATE,
        "actions": [
            {"type": "extract", "selector": "table", "extract_field": "text", "description": "Read the table text"},
            {"type": "extract", "selector": "table th", "extract_field": "text", "description": "Read the headers"},
            {"type": "screenshot", "filename": "data-table", "description": "Capture the table"},
        ],
    },
    # Filters
    {
        "name": "Apply Filters",
        "description": "Narrow down results with the filter panel",
        "category": SkillCategory.FILTERS,
        "difficulty": SkillDifficulty.INTERMEDIATE,
        "actions": [
            {"type": "click", "selector": ".filter, [data-filter]", "description": "Open filters"},
            {"type": "select", "selector": 'select[name*="status"]', "text": "active", "description": "Select status"},
            {"type": "click", "selector": ".apply-filter", "description": "Apply filters"},
            {"type": "wait", "timeout": 2000, "description": "Wait for results"},
            {"type": "screenshot", "filename": "filtered-results", "description": "Capture filtered results"},
        ],
    },
]


def default_skill_specs() -> list[SkillSpec]:
    """Validated specs for the built-in catalog."""
    return [SkillSpec.model_validate(data) for data in DEFAULT_SKILLS]
