"""Offline Markdown drafts built from fixed templates, no model call involved."""
from __future__ import annotations

import re
from datetime import date
from typing import Optional

from .models import HandbookTemplate, HandbookTone

_VOICES = {
    HandbookTone.FORMAL: "This document outlines official policies and expectations.",
    HandbookTone.DIRECT: "Read this. Follow it. Ask questions if anything is unclear.",
    HandbookTone.FRIENDLY: "Welcome! This handbook is here to make things clear and easy.",
}


def title_case(value: str) -> str:
    return re.sub(r"\w\S*", lambda match: match.group(0)[0].upper() + match.group(0)[1:].lower(), value)


def build_template_draft(
    *,
    template: HandbookTemplate,
    company_name: Optional[str] = None,
    state: Optional[str] = None,
    tone: HandbookTone = HandbookTone.FRIENDLY,
    today: Optional[date] = None,
) -> str:
    company = (company_name or "").strip() or "Your Company"
    region = title_case((state or "").strip() or "your state")
    voice = _VOICES[tone]
    footer = f"---\n_Last updated: {(today or date.today()).isoformat()}_\n"

    if template is HandbookTemplate.SECURITY_POLICY_PACK:
        body = f"""# {company} - Security Policy Pack

_{voice}_

## 1. Access Control
- Use unique credentials (no shared logins).
- Enable MFA for all accounts where available.
- Request access through approved channels.

## 2. Password Policy
- Use strong passwords (12+ characters recommended).
- Use a password manager.
- Never reuse passwords across services.

## 3. Device & Endpoint Security
- Keep OS and apps up to date.
- Full-disk encryption required on laptops.
- Report lost or stolen devices immediately.

## 4. Data Handling
- Classify data (Public / Internal / Confidential).
- Do not email confidential data to personal accounts.
- Store company data only in approved tools.

## 5. Incident Response
If you suspect a breach:
1. Stop and contain (disconnect device if needed).
2. Report immediately to the security contact.
3. Do not delete evidence.

## 6. Compliance Notes ({region})
This draft is a starting point. Review with counsel for {region} requirements.

"""
    elif template is HandbookTemplate.SOP_OPERATIONS:
        body = f"""# {company} - Operations SOP

_{voice}_

## 1. Purpose
Define how work gets done consistently and reliably.

## 2. Roles & Responsibilities
- Owners: accountable for outcomes
- Operators: execute steps
- Reviewers: ensure quality

## 3. Standard Workflow
1. Intake (request captured)
2. Triage (priority + owner assigned)
3. Execution (steps followed)
4. QA (checks completed)
5. Closeout (notes + learnings)

## 4. Quality Checks
- Verify against acceptance criteria
- Document exceptions
- Log recurring issues

## 5. Metrics
Track cycle time, error rate, rework rate and SLA adherence.

## 6. Compliance Notes ({region})
Confirm operational policies align with {region} rules where applicable.

"""
    else:
        body = f"""# {company} - Employee Handbook

_{voice}_

## 1. Welcome & Culture
We're glad you're here. This handbook sets expectations and helps you succeed.

## 2. Employment Basics
- Equal opportunity
- At-will employment (where applicable)
- Workplace standards

## 3. Work Hours & Remote Work
- Core working hours
- Time tracking expectations
- Remote work guidelines

## 4. Compensation & Benefits
- Pay schedule
- Benefits overview
- Paid time off (PTO)

## 5. Code of Conduct
- Respectful workplace
- Anti-harassment policy
- Conflicts of interest

## 6. Security & Confidentiality
- Protect company information
- Acceptable use of systems
- Reporting issues

## 7. Discipline & Termination
- Progressive discipline approach
- How investigations work
- Separation steps

## 8. State-Specific Notes ({region})
This draft is a starting point. Review with legal counsel for {region} compliance.

"""
    return body + footer
