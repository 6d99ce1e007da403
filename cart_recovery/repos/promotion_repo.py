# cart_recovery/repos/promotion_repo.py
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from cart_recovery.data.models.promotion import PromotionCampaignModel, PromotionCodeModel


class PromotionRepo:
    def __init__(self, db: Session):
        self.db = db

    def list_active_campaigns(self) -> List[PromotionCampaignModel]:
        stmt = (
            select(PromotionCampaignModel)
            .where(PromotionCampaignModel.active.is_(True))
            .order_by(PromotionCampaignModel.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_campaign_by_name(self, name: str) -> PromotionCampaignModel | None:
        stmt = select(PromotionCampaignModel).where(PromotionCampaignModel.name == name)
        return self.db.execute(stmt).scalar_one_or_none()

    def create_campaign(self, campaign: PromotionCampaignModel) -> PromotionCampaignModel:
        self.db.add(campaign)
        self.db.commit()
        return campaign

    def create_code(self, code: PromotionCodeModel) -> PromotionCodeModel:
        #flush only, the caller commits it together with the cart link
        self.db.add(code)
        self.db.flush()
        return code

    def get_code(self, code_id: str) -> PromotionCodeModel | None:
        return self.db.get(PromotionCodeModel, code_id)

    def rollback(self):
        self.db.rollback()
