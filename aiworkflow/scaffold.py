"""Project setup: generate the starting documents from a few answers.

``setup`` fills ``docs/`` with a project context, coding standards matched to
the main language, an empty AI interaction log and an architecture stub.
``init_template`` lays out the directory skeleton of a template repository.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

from rich.console import Console
from rich.prompt import Prompt

from .errors import WorkflowError
from .workspace import ProjectWorkspace

logger = logging.getLogger("aiworkflow.scaffold")

VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")

LANGUAGES = ["JavaScript", "TypeScript", "Python", "Java", "Go", "Other"]
FRAMEWORKS = ["React", "Vue.js", "Angular", "Express.js", "Django", "FastAPI", "Spring Boot", "Other"]
AI_TOOLS = ["GitHub Copilot", "Claude", "ChatGPT", "Windsurf", "Cursor", "Google Gemini"]
DEFAULT_AI_TOOLS = ["GitHub Copilot", "Claude", "Windsurf"]
SECURITY_LEVELS = {
    "low": "Low (internal tools)",
    "medium": "Medium (typical web application)",
    "high": "High (finance, healthcare and similar)",
}

LANGUAGE_PRESETS = {
    "JavaScript": {
        "style": "ESLint + Prettier",
        "naming": "camelCase",
        "testing": "Jest",
        "security": "npm audit + ESLint security rules",
    },
    "TypeScript": {
        "style": "ESLint + Prettier + TypeScript",
        "naming": "camelCase",
        "testing": "Jest + @types",
        "security": "npm audit + ESLint security rules",
    },
    "Python": {
        "style": "PEP 8 + Black + isort",
        "naming": "snake_case",
        "testing": "pytest",
        "security": "bandit + safety",
    },
}

TEMPLATE_DIRECTORIES = [
    ".github/ISSUE_TEMPLATE",
    ".github/workflows",
    "docs",
    "docs/ai-context",
    "docs/ai-prompts",
    "templates",
    "examples/sample-project",
]


@dataclass(slots=True)
class SetupAnswers:
    project_name: str
    project_version: str = "0.1.0"
    author: str = ""
    description: str = "A new AI-assisted development project"
    language: str = "JavaScript"
    framework: str = "Other"
    ai_tools: List[str] = field(default_factory=lambda: list(DEFAULT_AI_TOOLS))
    team_size: str = "3-5"
    security_level: str = "medium"

    def validate(self) -> None:
        if not self.project_name.strip():
            raise WorkflowError("A project name is required")
        if not VERSION_PATTERN.match(self.project_version):
            raise WorkflowError(
                f"Invalid version '{self.project_version}': use the 0.0.0 form",
                details={"field": "project_version"},
            )
        if self.security_level not in SECURITY_LEVELS:
            raise WorkflowError(
                f"Unknown security level '{self.security_level}'",
                details={"valid": list(SECURITY_LEVELS)},
            )

    @property
    def package_name(self) -> str:
        return re.sub(r"\s+", "-", self.project_name.strip().lower())

    @property
    def security_label(self) -> str:
        return SECURITY_LEVELS[self.security_level]


def _bullets(items: List[str]) -> str:
    return "\n".join(f"- {item}" for item in items) or "- (none selected)"


def render_project_context(answers: SetupAnswers, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"""# Project Context

## 🎯 Overview
- **Name**: {answers.project_name}
- **Purpose**: {answers.description}
- **Timeline**: {today.isoformat()} - [planned end date]
- **Team**: {answers.team_size} people

## 🏗️ Technology Stack
### Decided
- **Language**: {answers.language}
- **Framework**: {answers.framework}
- **Database**: [to be decided]
- **Infrastructure**: [to be decided]

## 🤖 AI Tools
{_bullets(answers.ai_tools)}

## 🔒 Constraints
- **Security level**: {answers.security_label}
- **Performance**: [describe requirements]
- **Compliance**: [describe requirements]

## 📊 Success Metrics
- **KPI1**: [metric and target]
- **KPI2**: [metric and target]

## 🤖 AI Usage Policy
- **Allowed**: code generation, review, tests, documentation
- **Restricted**: never send confidential data to external services
- **Review**: every AI output is checked by a person

## 📝 History
- {today.isoformat()}: initial project setup
"""


def render_coding_standards(answers: SetupAnswers) -> str:
    preset = LANGUAGE_PRESETS.get(answers.language, LANGUAGE_PRESETS["JavaScript"])
    high_security = ""
    if answers.security_level == "high":
        high_security = """
#### High security requirements
- **Encryption**: data at rest must be encrypted
- **Audit log**: record every operation
- **Access control**: least privilege
- **Scanning**: regular security scans are mandatory
"""
    return f"""# Coding Standards

## 🎨 Style Guide
### Language: {answers.language}
- **Style**: {preset['style']}
- **Naming**: {preset['naming']}
- **Test framework**: {preset['testing']}
- **Security tooling**: {preset['security']}

### Naming
- **Variables**: {preset['naming']}
- **Functions**: {preset['naming']}
- **Classes**: PascalCase
- **Constants**: UPPER_SNAKE_CASE

## 🔒 Security Standards
### Level: {answers.security_label}

#### Baseline
- **Input validation**: validate every input
- **Authentication**: token based
- **Logging**: never log secrets
{high_security}
## 🧪 Testing Standards
- **Unit tests**: 80% coverage or more
- **Integration tests**: every API endpoint
- **E2E tests**: the main user flows

## 📦 Dependency Management
- **Updates**: quarterly
- **Vulnerabilities**: fix as soon as they are found
- **Licenses**: MIT/Apache-2.0 only

## 🤖 AI-Generated Code
- **Review**: every AI-generated change is reviewed by a person
- **Tests**: AI-generated features ship with tests
- **Documentation**: complex generated logic gets comments
"""


def render_interaction_log(answers: SetupAnswers) -> str:
    return f"""# AI Interaction Log

## Project: {answers.project_name}

## 🤖 AI Tools
{_bullets(answers.ai_tools)}

## 📋 Context Handoffs by Phase

### 🎯 Requirements → PoC
*Update when requirements are complete*

### 🧪 PoC → Implementation
*Update when the PoC is complete*

### ⚙️ Implementation → Review
*Update when implementation is complete*

### 🧪 Review → Testing
*Update when the review is complete*

## 📝 Key Decisions
*Record the important technical decisions of each phase*

## 🔄 Improvements
*Lessons learned about the workflow*

---
*Update this file at the end of every phase*
"""


def render_architecture(answers: SetupAnswers, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"""# System Architecture

## 🏗️ Project: {answers.project_name}

## 📋 Technology Stack
- **Language**: {answers.language}
- **Framework**: {answers.framework}
- **Database**: [to be decided]
- **Infrastructure**: [to be decided]

## 🏛️ Overview
*Fill in after the PoC*

### System diagram
```mermaid
graph TD
    A[Client] --> B(API Gateway)
    B --> C{{Service A}}
    B --> D{{Service B}}
    C --> E[Database A]
    D --> F[Database B]
```

## 🔗 API Design
*Describe the API here*

## 🗄️ Data Model
*Tables and ER diagram*

## 🔒 Security Architecture
*Security level: {answers.security_label}*

## 📈 Scalability and Availability
*How the non-functional requirements are met*

## 📝 History
- {today.isoformat()}: initial document
"""


TEMPLATE_README = """# AI Development Workflow Template

A GitHub-centred development workflow where each phase hands its context to
the next through issue templates, context documents and automation.

## Quick start

```bash
gh repo create my-project --template your-username/ai-development-workflow-template
git clone https://github.com/your-username/my-project.git
cd my-project
pip install ai-workflow-kit
aiworkflow setup
```

## Workflow

1. **Requirements**: strategic decisions and business value with Claude, Gemini or ChatGPT
2. **PoC**: Windsurf driven prototyping; people judge the results
3. **Implementation**: GitHub Copilot or Cursor; people solve the hard problems
4. **Review**: Copilot review assistance; people confirm business logic
5. **Testing**: automated test generation and release checks

## License

MIT License
"""


class ProjectScaffolder:
    def __init__(self, root: Path | str):
        self.workspace = ProjectWorkspace(root)

    def write_documents(self, answers: SetupAnswers) -> List[Path]:
        answers.validate()
        documents = {
            "PROJECT_CONTEXT.md": render_project_context(answers),
            "CODING_STANDARDS.md": render_coding_standards(answers),
            "AI_INTERACTION_LOG.md": render_interaction_log(answers),
            "ARCHITECTURE.md": render_architecture(answers),
        }
        self.workspace.docs_dir.mkdir(parents=True, exist_ok=True)
        written = []
        for name, content in documents.items():
            path = self.workspace.docs_dir / name
            path.write_text(content, encoding="utf-8")
            written.append(path)
        logger.info(f"Generated {len(written)} project documents for {answers.project_name}")
        return written

    def update_package_json(self, answers: SetupAnswers) -> bool:
        """Apply name, version, description and author; False when there is no package.json."""
        package = self.workspace.load_package_json()
        if package is None:
            return False
        package["name"] = answers.package_name
        package["version"] = answers.project_version
        package["description"] = answers.description
        if answers.author:
            package["author"] = answers.author
        self.workspace.save_package_json(package)
        return True

    def setup(self, answers: SetupAnswers) -> Dict[str, object]:
        documents = self.write_documents(answers)
        return {
            "documents": [self.workspace.relative(p) for p in documents],
            "package_json_updated": self.update_package_json(answers),
        }

    def init_template(self) -> List[str]:
        created = []
        for directory in TEMPLATE_DIRECTORIES:
            (self.workspace.root / directory).mkdir(parents=True, exist_ok=True)
            created.append(directory)
        readme = self.workspace.root / "README.md"
        if not readme.exists():
            readme.write_text(TEMPLATE_README, encoding="utf-8")
            created.append("README.md")
        return created


def prompt_setup_answers(console: Console, defaults: Optional[SetupAnswers] = None) -> SetupAnswers:
    """Ask the setup questions interactively, re-asking until each answer is valid."""
    defaults = defaults or SetupAnswers(project_name="")

    name = ""
    while not name.strip():
        name = Prompt.ask("Project name", default=defaults.project_name or None, console=console) or ""
        if not name.strip():
            console.print("[red]A project name is required[/red]")

    version = ""
    while not VERSION_PATTERN.match(version):
        version = Prompt.ask("Project version", default=defaults.project_version, console=console)
        if not VERSION_PATTERN.match(version):
            console.print("[red]Use the 0.0.0 form[/red]")

    author = Prompt.ask("Author", default=defaults.author, console=console)
    description = Prompt.ask("Description", default=defaults.description, console=console)
    language = Prompt.ask("Main language", choices=LANGUAGES, default=defaults.language, console=console)
    framework = Prompt.ask("Framework", choices=FRAMEWORKS, default=defaults.framework, console=console)

    console.print(f"[dim]Available AI tools: {', '.join(AI_TOOLS)}[/dim]")
    tools = Prompt.ask("AI tools (comma separated)", default=", ".join(defaults.ai_tools), console=console)
    team_size = Prompt.ask("Team size", default=defaults.team_size, console=console)
    security = Prompt.ask(
        "Security level", choices=list(SECURITY_LEVELS), default=defaults.security_level, console=console
    )

    return SetupAnswers(
        project_name=name.strip(),
        project_version=version,
        author=author,
        description=description,
        language=language,
        framework=framework,
        ai_tools=[t.strip() for t in tools.split(",") if t.strip()],
        team_size=team_size,
        security_level=security,
    )
