# -*- coding: utf-8 -*-
"""Domain records — Pydantic models.

These are read-only snapshots from the analysis pipeline's point of view.
Storage is simple JSON files (see storage.py) so local deployments need no
document database.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

# Numeric metrics summed by the context aggregator (food items).
FOOD_METRICS = (
    "calories",
    "protein",
    "carbs",
    "fat",
    "fiber",
    "sugar",
    "sodium",
    "potassium",
    "saturated_fat",
    "vitamin_c",
    "iron",
)


class MealType(str, Enum):
    breakfast = "breakfast"
    lunch = "lunch"
    dinner = "dinner"
    snack = "snack"


class LabStatus(str, Enum):
    normal = "normal"
    low = "low"
    high = "high"
    critical = "critical"


class FoodItem(BaseModel):
    name: str = Field(..., min_length=1)
    quantity: float = Field(1.0, ge=0)
    unit: str = "serving"
    calories: Optional[float] = Field(None, ge=0)
    protein: Optional[float] = Field(None, ge=0)
    carbs: Optional[float] = Field(None, ge=0)
    fat: Optional[float] = Field(None, ge=0)
    fiber: Optional[float] = Field(None, ge=0)
    sugar: Optional[float] = Field(None, ge=0)
    sodium: Optional[float] = Field(None, ge=0)
    potassium: Optional[float] = Field(None, ge=0)
    saturated_fat: Optional[float] = Field(None, ge=0)
    vitamin_c: Optional[float] = Field(None, ge=0)
    iron: Optional[float] = Field(None, ge=0)


class FoodEntry(BaseModel):
    entry_id: str
    eaten_at: str = Field(..., description="ISO8601 timestamp")
    meal_type: MealType
    items: List[FoodItem] = Field(default_factory=list)
    notes: Optional[str] = None
    created_at: str


class LabValue(BaseModel):
    name: str = Field(..., min_length=1)
    value: float
    unit: str
    reference_range: Optional[str] = None
    status: Optional[LabStatus] = None


class LabPanel(BaseModel):
    panel_id: str
    test_date: str = Field(..., description="YYYY-MM-DD")
    lab_name: Optional[str] = Field(None, max_length=100)
    doctor_name: Optional[str] = Field(None, max_length=100)
    values: List[LabValue] = Field(default_factory=list)
    notes: Optional[str] = None
    created_at: str


class SupplementRegimen(BaseModel):
    regimen_id: str
    name: str = Field(..., min_length=1)
    brand: Optional[str] = None
    dosage: float = Field(..., ge=0)
    unit: str
    frequency: str = "daily"
    time_of_day: List[str] = Field(default_factory=list)
    instructions: Optional[str] = None
    notes: Optional[str] = None
    active: bool = True
    created_at: str


class SupplementIntake(BaseModel):
    intake_id: str
    supplement_name: str
    dosage: float = Field(..., ge=0)
    unit: str
    taken_at: str = Field(..., description="ISO8601 timestamp")
    time_of_day: Optional[str] = None


class UserProfile(BaseModel):
    age: Optional[int] = Field(None, ge=0, le=130)
    gender: Optional[str] = None
    weight_kg: Optional[float] = Field(None, ge=0, le=500)
    height_cm: Optional[float] = Field(None, ge=0, le=300)
    activity_level: Optional[str] = None
    health_goals: List[str] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)
    dietary_restrictions: List[str] = Field(default_factory=list)
    weight_goal_lbs: Optional[float] = Field(None, ge=0)
    weight_goal_timeframe_weeks: Optional[float] = Field(None, gt=0)
