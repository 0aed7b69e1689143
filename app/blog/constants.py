"""
Central constants for the blog platform.
"""
from __future__ import annotations

# Category slug -> display name for categories that don't title-case cleanly
CATEGORY_DISPLAY_NAMES = {
    "web-development": "Web Development",
    "javascript": "JavaScript",
    "react": "React",
    "nextjs": "Next.js",
    "nodejs": "Node.js",
    "artificial-intelligence": "Artificial Intelligence",
    "machine-learning": "Machine Learning",
    "large-language-models": "Large Language Models",
    "iot": "Internet of Things (IoT)",
    "robotics": "Robotics",
    "data-science": "Data Science",
    "blockchain": "Blockchain",
    "cybersecurity": "Cybersecurity",
    "cloud-computing": "Cloud Computing",
    "devops": "DevOps",
    "mobile-development": "Mobile Development",
    "python": "Python",
    "tutorials": "Tutorials",
    "tips": "Tips & Tricks",
    "industry-trends": "Industry Trends",
    "tech-news": "Tech News",
}

# Seed set for a fresh install (scripts/init_db.py)
DEFAULT_CATEGORIES = (
    {"name": "Web Development", "slug": "web-development", "color": "#3b82f6", "icon": "💻",
     "description": "Frontend and backend web development tutorials, frameworks, and best practices"},
    {"name": "Artificial Intelligence", "slug": "artificial-intelligence", "color": "#8b5cf6", "icon": "🤖",
     "description": "AI, machine learning, and deep learning content"},
    {"name": "JavaScript", "slug": "javascript", "color": "#f59e0b", "icon": "⚡",
     "description": "JavaScript tutorials, frameworks, and modern development practices"},
    {"name": "React", "slug": "react", "color": "#06b6d4", "icon": "⚛️",
     "description": "React tutorials, hooks, state management, and ecosystem"},
    {"name": "Internet of Things", "slug": "iot", "color": "#10b981", "icon": "🌐",
     "description": "IoT devices, sensors, smart home technology, and embedded systems"},
    {"name": "Mobile Development", "slug": "mobile-development", "color": "#f97316", "icon": "📱",
     "description": "iOS, Android, React Native, and cross-platform mobile development"},
    {"name": "Blockchain", "slug": "blockchain", "color": "#ef4444", "icon": "⛓️",
     "description": "Cryptocurrency, smart contracts, Web3, and decentralized technologies"},
    {"name": "DevOps", "slug": "devops", "color": "#84cc16", "icon": "🔧",
     "description": "CI/CD, deployment, monitoring, and infrastructure management"},
)

# Public search result cap
SEARCH_RESULT_LIMIT = 20

# /api/notify sends one message per subscriber, this many at a time
POST_NOTIFY_BATCH_SIZE = 50

# Free Gmail sending guidelines, surfaced on the admin email-usage panel
GMAIL_DAILY_LIMIT = 500
GMAIL_RATE_LIMIT = 30  # emails per minute
GMAIL_RECOMMENDATIONS = (
    "Free Gmail: 500 emails per day",
    "Google Workspace: 2,000 emails per day",
    "Rate limit: ~30 emails per minute",
    "Limit resets every 24 hours",
    "Enable 2FA and use app password",
)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}
