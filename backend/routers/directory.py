from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from directory_service import execom_by_year, execom_years, list_departments
from schemas import DepartmentResponse, ExecomDirectoryResponse, ExecomYearsResponse

router = APIRouter()


@router.get("/departments", response_model=List[DepartmentResponse])
def departments(db: Session = Depends(get_db)):
    return list_departments(db)


@router.get("/execom/years", response_model=ExecomYearsResponse)
def execom_year_list(db: Session = Depends(get_db)):
    return execom_years(db)


@router.get("/execom/{academic_year}", response_model=ExecomDirectoryResponse)
def execom_directory(academic_year: int, db: Session = Depends(get_db)):
    return execom_by_year(db, academic_year)
