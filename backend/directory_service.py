from typing import Dict, List, Tuple

from sqlalchemy.orm import Session

from errors import NotFoundError
from models import Department, ExecomMember, ExecomPosition
from schemas import DepartmentResponse, ExecomDirectoryResponse, ExecomMemberInfo, ExecomYearsResponse

UNKNOWN = "Unknown"


def list_departments(db: Session) -> List[DepartmentResponse]:
    rows = db.query(Department).order_by(Department.department_name.asc()).all()
    return [DepartmentResponse.model_validate(row) for row in rows]


def execom_years(db: Session) -> ExecomYearsResponse:
    rows = (
        db.query(ExecomMember.academic_year)
        .filter(ExecomMember.academic_year.isnot(None))
        .distinct()
        .order_by(ExecomMember.academic_year.desc())
        .all()
    )
    return ExecomYearsResponse(years=[row[0] for row in rows])


def split_position_title(title) -> Tuple[str, str]:
    """``"Technical-head"`` -> ``("Technical", "Head")``."""
    parts = str(title or f"{UNKNOWN}-{UNKNOWN}").split("-")
    team = parts[0].strip() or UNKNOWN
    role = parts[1].strip() if len(parts) > 1 and parts[1].strip() else UNKNOWN
    return team, role.capitalize()


def execom_by_year(db: Session, academic_year: int) -> ExecomDirectoryResponse:
    rows = (
        db.query(ExecomMember, ExecomPosition)
        .outerjoin(ExecomPosition, ExecomMember.position_id == ExecomPosition.id)
        .filter(ExecomMember.academic_year == academic_year)
        .order_by(
            ExecomPosition.priority.asc().nullslast(),
            ExecomPosition.title.asc().nullslast(),
            ExecomMember.name.asc(),
        )
        .all()
    )
    if not rows:
        raise NotFoundError(f"No execom members found for academic year {academic_year}")

    teams: Dict[str, List[ExecomMemberInfo]] = {}
    for member, position in rows:
        team, role = split_position_title(position.title if position else None)
        teams.setdefault(team, []).append(
            ExecomMemberInfo(
                name=member.name,
                batch=member.batch,
                upload_image=member.upload_image,
                social_link=member.social_link,
                role=role,
            )
        )
    return ExecomDirectoryResponse(academic_year=academic_year, teams=teams)
