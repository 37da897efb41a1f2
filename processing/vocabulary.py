"""Keyword tables used by normalization and scoring.

Order matters where noted: role lookup is first-match over :data:`ROLE_KEYWORDS`.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

from ingestion.models.domain import EligibilityYear, Role

# first match wins
ROLE_KEYWORDS: List[Tuple[Role, Tuple[str, ...]]] = [
    (
        Role.SOFTWARE_ENGINEERING,
        (
            "software engineer", "software developer", "software development", "full stack", "fullstack",
            "frontend", "front end", "backend", "back end", "web developer", "mobile developer",
            "ios developer", "android developer", "devops", "sre", "site reliability", "platform engineer",
            "infrastructure engineer", "swe",
        ),
    ),
    (
        Role.PRODUCT_MANAGEMENT,
        (
            "product manager", "product management", "pm intern", "product owner", "product strategy",
            "product marketing", "growth product",
        ),
    ),
    (
        Role.DATA_SCIENCE,
        (
            "data scientist", "data science", "machine learning", "ml engineer", "data analyst", "analytics",
            "ai engineer", "artificial intelligence", "data engineer", "business intelligence",
        ),
    ),
    (
        Role.QUANTITATIVE_RESEARCH,
        (
            "quantitative research", "quant", "quantitative analyst", "quant developer", "algorithmic trading",
            "risk management", "derivatives", "fixed income",
        ),
    ),
    (
        Role.BUSINESS_ANALYST,
        (
            "business analyst", "strategy analyst", "operations analyst", "consulting analyst",
            "financial analyst", "investment analyst",
        ),
    ),
    (
        Role.DESIGN,
        (
            "ux designer", "ui designer", "product designer", "visual designer", "interaction designer",
            "user experience", "user interface", "design",
        ),
    ),
    (
        Role.MARKETING,
        (
            "marketing", "digital marketing", "content marketing", "social media", "brand marketing",
            "performance marketing", "marketing analyst",
        ),
    ),
    (
        Role.FINANCE,
        (
            "finance", "investment banking", "corporate finance", "treasury", "fp&a", "financial planning",
            "accounting",
        ),
    ),
    (
        Role.CONSULTING,
        (
            "consultant", "consulting", "strategy consulting", "management consulting", "business consulting",
            "technology consulting",
        ),
    ),
    (
        Role.RESEARCH,
        (
            "research", "researcher", "research scientist", "research engineer", "lab research",
            "academic research", "clinical research",
        ),
    ),
]

MAJOR_TO_ROLES: Dict[str, Tuple[Role, ...]] = {
    "Computer Science": (
        Role.SOFTWARE_ENGINEERING, Role.DATA_SCIENCE, Role.PRODUCT_MANAGEMENT, Role.QUANTITATIVE_RESEARCH,
    ),
    "Software Engineering": (Role.SOFTWARE_ENGINEERING, Role.PRODUCT_MANAGEMENT),
    "Computer Engineering": (Role.SOFTWARE_ENGINEERING, Role.DATA_SCIENCE),
    "Electrical Engineering": (Role.SOFTWARE_ENGINEERING, Role.RESEARCH),
    "Business": (Role.PRODUCT_MANAGEMENT, Role.BUSINESS_ANALYST, Role.CONSULTING, Role.MARKETING),
    "Finance": (Role.FINANCE, Role.QUANTITATIVE_RESEARCH, Role.BUSINESS_ANALYST),
    "Economics": (Role.FINANCE, Role.BUSINESS_ANALYST, Role.CONSULTING, Role.QUANTITATIVE_RESEARCH),
    "Mathematics": (Role.DATA_SCIENCE, Role.QUANTITATIVE_RESEARCH, Role.RESEARCH),
    "Statistics": (Role.DATA_SCIENCE, Role.BUSINESS_ANALYST, Role.RESEARCH),
    "Data Science": (Role.DATA_SCIENCE, Role.BUSINESS_ANALYST),
    "Information Systems": (Role.SOFTWARE_ENGINEERING, Role.BUSINESS_ANALYST, Role.PRODUCT_MANAGEMENT),
    "Marketing": (Role.MARKETING, Role.BUSINESS_ANALYST),
    "Psychology": (Role.DESIGN, Role.RESEARCH, Role.MARKETING),
    "Communications": (Role.MARKETING, Role.BUSINESS_ANALYST),
}

# canonical display name -> extra spellings matched in free text
SKILL_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "Python": ("python",),
    "Java": ("java",),
    "JavaScript": ("javascript",),
    "TypeScript": ("typescript",),
    "C++": ("c++",),
    "C#": ("c#",),
    "Go": ("golang",),
    "Rust": ("rust",),
    "Swift": ("swift",),
    "Kotlin": ("kotlin",),
    "Scala": ("scala",),
    "Matlab": ("matlab",),
    "SQL": ("sql",),
    "HTML": ("html",),
    "CSS": ("css",),
    "PHP": ("php",),
    "Ruby": ("ruby",),
    "React": ("react", "react.js", "reactjs"),
    "Angular": ("angular",),
    "Vue": ("vue", "vue.js"),
    "Node.js": ("node.js", "nodejs"),
    "Django": ("django",),
    "Flask": ("flask",),
    "Spring": ("spring boot",),
    "TensorFlow": ("tensorflow",),
    "PyTorch": ("pytorch",),
    "Pandas": ("pandas",),
    "NumPy": ("numpy",),
    "Scikit-Learn": ("scikit-learn", "sklearn"),
    "Machine Learning": ("machine learning",),
    "Data Analysis": ("data analysis",),
    "Git": ("git",),
    "Docker": ("docker",),
    "Kubernetes": ("kubernetes", "k8s"),
    "AWS": ("aws", "amazon web services"),
    "Azure": ("azure",),
    "GCP": ("gcp", "google cloud"),
    "Terraform": ("terraform",),
    "MongoDB": ("mongodb",),
    "PostgreSQL": ("postgresql", "postgres"),
    "MySQL": ("mysql",),
    "Redis": ("redis",),
    "Agile": ("agile",),
    "Scrum": ("scrum",),
    "CI/CD": ("ci/cd",),
    "Microservices": ("microservices",),
    "Excel": ("excel",),
    "PowerPoint": ("powerpoint",),
    "Tableau": ("tableau",),
    "Power BI": ("power bi",),
    "Salesforce": ("salesforce",),
    "Jira": ("jira",),
    "Financial Modeling": ("financial modeling",),
    "Market Research": ("market research",),
    "Project Management": ("project management",),
}

PROGRAM_KEYWORDS: Tuple[str, ...] = (
    "google step", "step intern", "microsoft explore", "explore intern", "code2040", "colorstack",
    "rewriting the code", "grace hopper", "tapia", "nsbe", "shpe", "out in tech", "first year",
    "first-year", "sophomore", "early career", "diversity", "underrepresented", "women in tech", "veterans",
)

LOCATION_ALIASES: Dict[str, str] = {
    "sf": "San Francisco, CA",
    "san francisco": "San Francisco, CA",
    "bay area": "San Francisco, CA",
    "silicon valley": "San Francisco, CA",
    "nyc": "New York, NY",
    "new york city": "New York, NY",
    "new york": "New York, NY",
    "la": "Los Angeles, CA",
    "los angeles": "Los Angeles, CA",
    "seattle": "Seattle, WA",
    "boston": "Boston, MA",
    "chicago": "Chicago, IL",
    "austin": "Austin, TX",
    "denver": "Denver, CO",
    "atlanta": "Atlanta, GA",
}

UNSPECIFIED_LOCATIONS = ("", "location tbd", "tbd", "n/a", "not specified", "location not specified")

REMOTE_KEYWORDS: Tuple[str, ...] = ("remote", "work from home", "distributed", "anywhere")
UNPAID_KEYWORDS: Tuple[str, ...] = ("unpaid", "volunteer", "no compensation", "academic credit", "no pay")
PAID_KEYWORDS: Tuple[str, ...] = ("paid", "salary", "compensation", "stipend", "$", "hourly")

YEAR_KEYWORDS: List[Tuple[EligibilityYear, Tuple[str, ...]]] = [
    (EligibilityYear.FRESHMAN, ("freshman", "freshmen", "first year", "first-year")),
    (EligibilityYear.SOPHOMORE, ("sophomore", "second year", "second-year")),
    (EligibilityYear.JUNIOR, ("junior", "third year", "third-year")),
    (EligibilityYear.SENIOR, ("senior", "fourth year", "fourth-year", "final year", "graduating")),
]
DEFAULT_ELIGIBILITY: Tuple[EligibilityYear, ...] = (EligibilityYear.JUNIOR, EligibilityYear.SENIOR)

TOP_COMPANIES: Tuple[str, ...] = ("google", "microsoft", "meta", "apple", "amazon", "netflix", "tesla")
AGGREGATOR_DOMAINS: Tuple[str, ...] = ("indeed", "linkedin")

COMPANY_ALIASES: Dict[str, str] = {
    "google": "Google",
    "alphabet": "Google",
    "microsoft": "Microsoft",
    "meta": "Meta",
    "facebook": "Meta",
    "meta platforms": "Meta",
    "amazon": "Amazon",
    "aws": "Amazon",
    "apple": "Apple",
    "netflix": "Netflix",
    "tesla": "Tesla",
    "jp morgan": "JPMorgan Chase",
    "jpmorgan": "JPMorgan Chase",
}
