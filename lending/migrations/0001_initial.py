from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='TenantPlan',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.PositiveIntegerField(unique=True)),
                ('max_products', models.IntegerField(default=-1)),
                ('max_active_loans', models.IntegerField(default=-1)),
                ('max_outstanding_amount', models.BigIntegerField(default=-1)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name='LoanProduct',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.PositiveIntegerField(db_index=True)),
                ('name', models.CharField(max_length=120)),
                ('description', models.TextField(blank=True, default='')),
                ('prefix', models.CharField(max_length=8, validators=[django.core.validators.RegexValidator('^[A-Z0-9]{2,8}$', 'Prefix must be 2-8 uppercase letters or digits.')])),
                ('starting_id', models.PositiveIntegerField(default=1)),
                ('next_sequence', models.PositiveIntegerField(default=1)),
                ('min_amount', models.BigIntegerField()),
                ('max_amount', models.BigIntegerField()),
                ('interest_rate', models.DecimalField(decimal_places=3, max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal('0')), django.core.validators.MaxValueValidator(Decimal('99.999'))])),
                ('interest_type', models.CharField(choices=[('flat', 'Flat'), ('reducing_balance', 'Reducing balance')], default='flat', max_length=20)),
                ('max_term', models.PositiveIntegerField()),
                ('term_period', models.CharField(choices=[('days', 'Days'), ('weeks', 'Weeks'), ('months', 'Months'), ('years', 'Years')], default='months', max_length=10)),
                ('late_penalty_rate', models.DecimalField(blank=True, decimal_places=3, max_digits=5, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0')), django.core.validators.MaxValueValidator(Decimal('99.999'))])),
                ('application_fee', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=15)),
                ('application_fee_type', models.CharField(choices=[('fixed', 'Fixed'), ('percentage', 'Percentage')], default='fixed', max_length=10)),
                ('processing_fee', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=15)),
                ('processing_fee_type', models.CharField(choices=[('fixed', 'Fixed'), ('percentage', 'Percentage')], default='fixed', max_length=10)),
                ('guarantor_required', models.BooleanField(default=False)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['id'],
                'constraints': [models.UniqueConstraint(fields=('tenant_id', 'prefix'), name='unique_product_prefix_per_tenant')],
            },
        ),
        migrations.CreateModel(
            name='Loan',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.PositiveIntegerField(db_index=True)),
                ('loan_code', models.CharField(max_length=32)),
                ('member_id', models.PositiveIntegerField(db_index=True)),
                ('savings_account_id', models.PositiveIntegerField(blank=True, null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('product_name', models.CharField(max_length=120)),
                ('interest_rate', models.DecimalField(decimal_places=3, max_digits=5)),
                ('interest_type', models.CharField(choices=[('flat', 'Flat'), ('reducing_balance', 'Reducing balance')], max_length=20)),
                ('late_penalty_rate', models.DecimalField(blank=True, decimal_places=3, max_digits=5, null=True)),
                ('guarantor_required', models.BooleanField(default=False)),
                ('principal_amount', models.BigIntegerField()),
                ('term', models.PositiveIntegerField()),
                ('term_period', models.CharField(choices=[('days', 'Days'), ('weeks', 'Weeks'), ('months', 'Months'), ('years', 'Years')], max_length=10)),
                ('application_fee_amount', models.BigIntegerField(default=0)),
                ('processing_fee_amount', models.BigIntegerField(default=0)),
                ('interest_amount', models.BigIntegerField(default=0)),
                ('total_payable', models.BigIntegerField(default=0)),
                ('amount_paid', models.BigIntegerField(default=0)),
                ('penalty_paid', models.BigIntegerField(default=0)),
                ('outstanding_balance', models.BigIntegerField(default=0)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('declined', 'Declined'), ('disbursed', 'Disbursed'), ('repaid', 'Repaid'), ('defaulted', 'Defaulted')], default='pending', max_length=10)),
                ('version', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('disbursed_at', models.DateTimeField(blank=True, null=True)),
                ('declined_at', models.DateTimeField(blank=True, null=True)),
                ('repaid_at', models.DateTimeField(blank=True, null=True)),
                ('defaulted_at', models.DateTimeField(blank=True, null=True)),
                ('product', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='loans', to='lending.loanproduct')),
            ],
            options={
                'ordering': ['-created_at', '-id'],
                'constraints': [models.UniqueConstraint(fields=('tenant_id', 'loan_code'), name='unique_loan_code_per_tenant')],
            },
        ),
        migrations.CreateModel(
            name='Guarantor',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('member_id', models.PositiveIntegerField()),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('rejected', 'Rejected')], default='pending', max_length=10)),
                ('invited_at', models.DateTimeField(auto_now_add=True)),
                ('responded_at', models.DateTimeField(blank=True, null=True)),
                ('loan', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='guarantors', to='lending.loan')),
            ],
            options={
                'ordering': ['id'],
                'unique_together': {('loan', 'member_id')},
            },
        ),
        migrations.CreateModel(
            name='LoanDocument',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reference', models.CharField(max_length=255)),
                ('label', models.CharField(blank=True, default='', max_length=120)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('loan', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='documents', to='lending.loan')),
            ],
            options={
                'ordering': ['id'],
            },
        ),
        migrations.CreateModel(
            name='RepaymentScheduleEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('installment_no', models.PositiveIntegerField()),
                ('due_date', models.DateField()),
                ('principal_due', models.BigIntegerField()),
                ('interest_due', models.BigIntegerField()),
                ('penalty_due', models.BigIntegerField(default=0)),
                ('principal_paid', models.BigIntegerField(default=0)),
                ('interest_paid', models.BigIntegerField(default=0)),
                ('penalty_paid', models.BigIntegerField(default=0)),
                ('amount_paid', models.BigIntegerField(default=0)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('partial', 'Partial'), ('paid', 'Paid'), ('overdue', 'Overdue')], default='pending', max_length=10)),
                ('loan', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='schedule', to='lending.loan')),
            ],
            options={
                'ordering': ['installment_no'],
                'unique_together': {('loan', 'installment_no')},
            },
        ),
        migrations.CreateModel(
            name='Payment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.BigIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('applied_at', models.DateTimeField()),
                ('penalty_amount', models.BigIntegerField(default=0)),
                ('interest_amount', models.BigIntegerField(default=0)),
                ('principal_amount', models.BigIntegerField(default=0)),
                ('reference', models.CharField(blank=True, default='', max_length=100)),
                ('remarks', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('loan', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='payments', to='lending.loan')),
            ],
            options={
                'ordering': ['applied_at', 'id'],
            },
        ),
        migrations.CreateModel(
            name='PaymentAllocation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('penalty_amount', models.BigIntegerField(default=0)),
                ('interest_amount', models.BigIntegerField(default=0)),
                ('principal_amount', models.BigIntegerField(default=0)),
                ('entry', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='allocations', to='lending.repaymentscheduleentry')),
                ('payment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='allocations', to='lending.payment')),
            ],
            options={
                'ordering': ['id'],
            },
        ),
        migrations.CreateModel(
            name='LoanEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event_type', models.CharField(max_length=40)),
                ('payload', models.JSONField(default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('loan', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='events', to='lending.loan')),
            ],
            options={
                'ordering': ['id'],
            },
        ),
    ]
