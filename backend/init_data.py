"""
初始化数据脚本
创建：员工账号、楼层、房间、收银台商品

默认账号（密码均为 123456）：
  admin      管理员
  counter1   前台
"""
import sys
sys.path.insert(0, '.')

from decimal import Decimal
from frontdesk.database import SessionLocal, init_db
from frontdesk.models.ontology import Employee, EmployeeRole, Floor, Product, Room
from frontdesk.security.auth import get_password_hash


def init_employees(db):
    """初始化员工账号"""
    employees = [
        {'username': 'admin', 'name': '管理员', 'role': EmployeeRole.ADMIN},
        {'username': 'counter1', 'name': '前台一', 'role': EmployeeRole.COUNTER},
    ]
    created = 0
    for emp in employees:
        if db.query(Employee).filter(Employee.username == emp['username']).first():
            continue
        db.add(Employee(password_hash=get_password_hash('123456'), is_active=True, **emp))
        created += 1
    db.commit()
    print(f"员工初始化完成: 新增 {created} 个")


def init_floors_and_rooms(db):
    """初始化 3 个楼层，每层 6 间房"""
    room_defs = [
        ('Single', Decimal('80.00')),
        ('Single', Decimal('80.00')),
        ('Double', Decimal('99.00')),
        ('Double', Decimal('99.00')),
        ('Matrimonial', Decimal('120.00')),
        ('Suite', Decimal('180.00')),
    ]
    created = 0
    for floor_number in (1, 2, 3):
        if not db.query(Floor).filter(Floor.number == floor_number).first():
            db.add(Floor(number=floor_number))
        for index, (room_type, price) in enumerate(room_defs, start=1):
            number = f"{floor_number}{index:02d}"
            if db.query(Room).filter(Room.number == number).first():
                continue
            db.add(Room(number=number, floor=floor_number, type=room_type, price_per_night=price))
            created += 1
    db.commit()
    print(f"房间初始化完成: 新增 {created} 间")


def init_products(db):
    """初始化收银台商品（Mak 商品销售与房内消费使用）"""
    products = [
        ('Agua mineral', 50, Decimal('3.00')),
        ('Gaseosa', 40, Decimal('4.00')),
        ('Cerveza', 60, Decimal('8.00')),
        ('Papas fritas', 30, Decimal('5.00')),
        ('Chocolate', 30, Decimal('3.50')),
    ]
    created = 0
    for name, stock, price in products:
        if db.query(Product).filter(Product.name == name).first():
            continue
        db.add(Product(name=name, stock=stock, price=price))
        created += 1
    db.commit()
    print(f"商品初始化完成: 新增 {created} 个")


def main():
    """主函数"""
    print("=" * 50)
    print("FrontDesk 初始化数据")
    print("=" * 50)

    # 初始化数据库
    init_db()
    print("数据库表创建完成")

    db = SessionLocal()
    try:
        init_employees(db)
        init_floors_and_rooms(db)
        init_products(db)

        print("=" * 50)
        print("初始化完成！")
        print()
        print("默认账号（密码均为 123456）：")
        print("  管理员:   admin")
        print("  前台:     counter1")
        print("=" * 50)
    finally:
        db.close()


if __name__ == '__main__':
    main()
